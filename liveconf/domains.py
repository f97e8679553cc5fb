"""Fixed set of independently reloadable configuration domains."""

from enum import Enum


class Domain(str, Enum):
    """One configuration document category. Value is the change-notification type."""

    APP = "app"
    BUSINESS = "business"
    UI = "ui"
    FEATURE_FLAGS = "features"

    @property
    def stem(self) -> str:
        """Source file name without suffix (e.g. feature-flags)."""
        return _STEMS[self]

    def filename(self, fmt: str = "json") -> str:
        return f"{self.stem}.{fmt}"

    @classmethod
    def parse(cls, value: str) -> "Domain":
        """Resolve a domain from its value or enum name (case-insensitive)."""
        key = value.strip().lower()
        for domain in cls:
            if key in (domain.value, domain.name.lower(), domain.stem):
                return domain
        raise ValueError(f"unknown domain {value!r}; expected one of: {[d.value for d in cls]}")


_STEMS = {
    Domain.APP: "app-config",
    Domain.BUSINESS: "business-config",
    Domain.UI: "ui-config",
    Domain.FEATURE_FLAGS: "feature-flags",
}

ALL_DOMAINS: tuple[Domain, ...] = tuple(Domain)
