from burnrate.profiles.discovery import ProfileConfig, discover_profiles

__all__ = ["ProfileConfig", "discover_profiles"]
