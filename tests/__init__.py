"""
Tests package - test suite of the token requestor.

Contains:
- unit/: Unit tests for individual components, run against in-memory
  stand-ins for the Kubernetes API
"""
