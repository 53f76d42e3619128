"""Expand CloudFormation intrinsic functions into resolved templates."""

__version__ = "0.1.0"
