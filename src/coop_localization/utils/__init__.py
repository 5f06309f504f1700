"""
Utils package for localization utility functions.
"""

__all__ = []

# Utilities are imported explicitly as needed to avoid namespace pollution
# Example usage:
#   from coop_localization.utils.transformations import get_quat_from_rotation_matrix
#   from coop_localization.utils.information import resolve_information
