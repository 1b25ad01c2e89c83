"""
Shared utilities for the premium tiers system.

This package aggregates the ambient building blocks used by the
service_premium package:

- config: Process settings via pydantic-settings
- logging: Structured logging with correlation ids
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: Clocks, config factories and event recorders for the
  service_premium test suites

Runtime modules here do not import from service_premium; test_helpers
builds service_premium config models and is only imported by tests.
"""
