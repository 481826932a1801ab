class FreshScanError(Exception):
    pass


class DataSourceError(FreshScanError):
    pass


class RateLimitError(DataSourceError):
    pass


class ConfigurationError(FreshScanError):
    pass


class ScanCancelledError(FreshScanError):
    pass
