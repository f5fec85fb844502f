"""Run history and concept dictionary persistence.

This package records import runs with their item audit trail and stores
the concepts and mappings an import creates or updates.
"""
