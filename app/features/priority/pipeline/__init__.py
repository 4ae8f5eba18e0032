"""
Pipeline components for the priority feature.

normalization -> scoring -> aggregation. Each subpackage exposes its
service class and a module-level default instance.
"""

__all__ = ["aggregation", "normalization", "scoring"]
