"""Agency analytics aggregation, caching and service-health engine"""

__version__ = "1.0.0"
