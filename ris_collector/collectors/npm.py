"""
npm registry collector.

Download counts come from the npm downloads point API, package metadata from
the registry, and the dependents count from npms.io. The dependents count is
best effort: an npms.io failure yields 0 instead of failing the source.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ris_collector.activity.schemas import subtract_months, utc_now
from ris_collector.collectors.errors import CollectorError, PackageNotFoundError
from ris_collector.collectors.http_client import HTTPClient
from ris_collector.collectors.rate_limiter import NPM
from ris_collector.libraries.schemas import RepositoryKey

logger = logging.getLogger(__name__)

DOWNLOADS_API = "https://api.npmjs.org/downloads"
REGISTRY_API = "https://registry.npmjs.org"
NPMS_API = "https://api.npms.io/v2"

# Repositories whose npm package name differs from the repository name.
# None marks repositories that publish no npm package.
PACKAGE_NAME_OVERRIDES: dict[str, str | None] = {
    "facebook/react": "react",
    "facebook/react-native": "react-native",
    "facebook/jest": "jest",
    "facebook/relay": "react-relay",
    "facebook/hermes": None,
    "facebook/metro": "metro",
    "reactjs/react.dev": None,
    "reactjs/rfcs": None,
    "reduxjs/redux": "redux",
    "reduxjs/redux-toolkit": "@reduxjs/toolkit",
    "pmndrs/zustand": "zustand",
    "pmndrs/jotai": "jotai",
    "pmndrs/react-spring": "@react-spring/web",
    "statelyai/xstate": "xstate",
    "TanStack/query": "@tanstack/react-query",
    "TanStack/router": "@tanstack/react-router",
    "TanStack/table": "@tanstack/react-table",
    "vercel/swr": "swr",
    "vercel/next.js": "next",
    "apollographql/apollo-client": "@apollo/client",
    "trpc/trpc": "@trpc/server",
    "remix-run/react-router": "react-router-dom",
    "remix-run/remix": "@remix-run/react",
    "react-hook-form/react-hook-form": "react-hook-form",
    "colinhacks/zod": "zod",
    "testing-library/react-testing-library": "@testing-library/react",
    "microsoft/playwright": "@playwright/test",
    "radix-ui/primitives": "@radix-ui/react-primitive",
    "tailwindlabs/headlessui": "@headlessui/react",
    "mui/material-ui": "@mui/material",
    "chakra-ui/chakra-ui": "@chakra-ui/react",
    "framer/motion": "framer-motion",
    "emotion-js/emotion": "@emotion/react",
    "react-navigation/react-navigation": "@react-navigation/native",
    "react-native-community/react-native-releases": None,
}


def package_name_for(repo: RepositoryKey) -> str | None:
    """npm package published from ``repo``; defaults to the repository name."""
    key = str(repo)
    if key in PACKAGE_NAME_OVERRIDES:
        return PACKAGE_NAME_OVERRIDES[key]
    return repo.name


@dataclass
class NpmMetrics:
    package_name: str
    downloads_12mo: int
    downloads_last_month: int
    dependents_count: int
    typescript_support: bool
    latest_version: str
    license: str


class NpmCollector:
    """Collects registry statistics for one npm package."""

    def __init__(self, http: HTTPClient, clock: Callable[[], datetime] = utc_now):
        self._http = http
        self._clock = clock

    async def fetch_metrics(self, package: str) -> NpmMetrics:
        today = self._clock()
        downloads_12mo = await self._fetch_downloads(
            package, subtract_months(today, 12), today
        )
        downloads_last_month = await self._fetch_downloads(
            package, subtract_months(today, 1), today
        )
        info = await self._fetch_package_info(package)
        dependents = await self._fetch_dependents(package)

        latest = (info.get("dist-tags") or {}).get("latest") or "unknown"
        latest_info = (info.get("versions") or {}).get(latest) or {}
        license_name = latest_info.get("license") or info.get("license") or "unknown"
        if isinstance(license_name, dict):
            license_name = license_name.get("type", "unknown")

        return NpmMetrics(
            package_name=info.get("name") or package,
            downloads_12mo=downloads_12mo,
            downloads_last_month=downloads_last_month,
            dependents_count=dependents,
            typescript_support=has_typescript_types(package, latest_info),
            latest_version=latest,
            license=str(license_name),
        )

    async def _fetch_downloads(self, package: str, start: datetime, end: datetime) -> int:
        period = f"{start.date().isoformat()}:{end.date().isoformat()}"
        response = await self._http.get(
            f"{DOWNLOADS_API}/point/{period}/{package}",
            upstream=NPM,
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            return 0
        return int(response.json().get("downloads") or 0)

    async def _fetch_package_info(self, package: str) -> dict[str, Any]:
        response = await self._http.get(
            f"{REGISTRY_API}/{package}", upstream=NPM, allow_statuses=(404,)
        )
        if response.status_code == 404:
            raise PackageNotFoundError(f"npm package {package} not found", status_code=404)
        return response.json()

    async def _fetch_dependents(self, package: str) -> int:
        try:
            data = await self._http.get_json(f"{NPMS_API}/package/{package}", upstream=NPM)
        except CollectorError as e:
            logger.warning("npms.io lookup failed for %s: %s", package, e)
            return 0
        return int(((data.get("collected") or {}).get("npm") or {}).get("dependentsCount") or 0)


def has_typescript_types(package: str, version_info: dict[str, Any]) -> bool:
    if version_info.get("types") or version_info.get("typings"):
        return True
    dependencies = version_info.get("dependencies") or {}
    return f"@types/{package}" in dependencies
