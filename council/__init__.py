"""Council: adaptive memory and role-selection engine for agent lifecycles."""

__version__ = "0.4.0"
