"""
Storecast - scheduled, multi-tenant social publishing.

Packages:
- storecast.core: tenancy, persistence, lifecycle rules, recurring trigger
- storecast.publishing: publisher capability, registry, due-work orchestrator
- storecast.cli: ``storecast`` command line
"""

__version__ = "0.3.0"
