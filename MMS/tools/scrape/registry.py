import json
import logging
import threading
from pathlib import Path
from typing import List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from MMS.services.shared.errors import ConfigLoadError
from MMS.services.shared.logger import EventLogger
from .schema import QUERY_PLACEHOLDER, SiteDescriptor


class SiteRegistry:
    """Ordered, immutable snapshot of the enabled site descriptors.

    The snapshot is a tuple replaced wholesale by `load()`; readers take a
    reference with `snapshot()` and keep a consistent view even if a reload
    happens while they work. A failed load leaves the registry empty rather
    than raising.
    """

    def __init__(self, sites_path: Optional[Union[str, Path]] = None, logger: Optional[EventLogger] = None):
        if sites_path is None:
            from MMS.services.shared.settings import get_settings
            sites_path = get_settings().registry.sites_path

        self.sites_path = Path(sites_path)
        self.logger = logger or EventLogger("registry")
        self._sites: Tuple[SiteDescriptor, ...] = ()
        self._write_lock = threading.Lock()

    @classmethod
    def from_descriptors(cls, sites: List[SiteDescriptor], sites_path: Optional[Union[str, Path]] = None) -> "SiteRegistry":
        """Build a registry from in-memory descriptors (disabled ones are dropped)."""
        registry = cls(sites_path=sites_path or "<memory>")
        registry._sites = tuple(site for site in sites if site.enabled)
        return registry

    def snapshot(self) -> Tuple[SiteDescriptor, ...]:
        return self._sites

    def __len__(self) -> int:
        return len(self._sites)

    def load(self) -> int:
        """Read the backing document and swap in the enabled descriptors.

        Returns:
            Number of active descriptors after the load.
        """
        with self._write_lock:
            try:
                sites = self._read_descriptors()
            except ConfigLoadError as e:
                self.logger.log("sites_load_failed", e.to_dict(), level=logging.ERROR)
                self._sites = ()
                return 0

            self._sites = tuple(sites)
            self.logger.log("sites_loaded", {
                "path": str(self.sites_path),
                "count": len(self._sites),
                "site_ids": [site.id for site in self._sites],
            })
            return len(self._sites)

    def reload(self) -> int:
        count = self.load()
        self.logger.log("sites_reloaded", {"count": count})
        return count

    def _read_descriptors(self) -> List[SiteDescriptor]:
        path = str(self.sites_path)
        try:
            with open(self.sites_path, "r", encoding="utf-8") as f:
                raw = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigLoadError(f"Failed to read sites file: {e}", path=path) from e

        try:
            if self.sites_path.suffix.lower() in (".yaml", ".yml"):
                records = yaml.safe_load(raw)
            else:
                records = json.loads(raw)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Failed to parse sites file: {e}", path=path) from e

        if not isinstance(records, list):
            raise ConfigLoadError(
                f"Sites file must contain a list of site descriptors, got {type(records).__name__}",
                path=path,
            )

        sites: List[SiteDescriptor] = []
        seen_ids = set()
        for index, record in enumerate(records):
            try:
                site = SiteDescriptor.model_validate(record)
            except ValidationError as e:
                # One broken entry does not take the other sites down
                self.logger.log("site_descriptor_skipped", {
                    "index": index,
                    "reason": "invalid",
                    "errors": e.errors(include_url=False, include_context=False),
                }, level=logging.WARNING)
                continue

            if not site.enabled:
                continue
            if site.id in seen_ids:
                self.logger.log("site_descriptor_skipped", {
                    "index": index,
                    "reason": "duplicate_id",
                    "site_id": site.id,
                }, level=logging.WARNING)
                continue

            if QUERY_PLACEHOLDER not in site.url_template:
                # Kept: every search fetches the template unchanged
                self.logger.log("site_template_without_placeholder", {
                    "index": index,
                    "site_id": site.id,
                    "url_template": site.url_template,
                }, level=logging.WARNING)

            seen_ids.add(site.id)
            sites.append(site)

        return sites
