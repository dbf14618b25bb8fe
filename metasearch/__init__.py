"""metasearch - multi-provider search result aggregation engine"""

__version__ = "1.0.0"
