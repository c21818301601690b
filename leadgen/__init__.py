"""leadgen: enrich scraped leads with company domain, executive name and verified email."""

from leadgen.config import APP_VERSION as __version__

__all__ = ["__version__"]
