from .prober import HealthProber, probe_url

__all__ = ["HealthProber", "probe_url"]
