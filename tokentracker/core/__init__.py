"""
Core modules for the token tracker.

This package contains the value objects, error taxonomy, pricing table,
provider registry and the tracker that ties them together.
"""
