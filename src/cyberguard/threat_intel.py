"""VirusTotal v3 client and the lookup-or-submit-then-poll flow.

URL scans try the cached URL object first and only submit for a fresh
analysis when the provider has never seen it. Hashes are looked up
directly. Files are always submitted. Polling is fixed-interval and
bounded by the variant's :class:`~cyberguard.models.PollPolicy`.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import requests

from cyberguard.errors import PollTimeoutError, ProviderLookupError, ScanError
from cyberguard.models import (
    ExhaustionAction,
    IntelReport,
    PollPolicy,
    ProviderMetadata,
    ProviderStats,
    ScanQueued,
    ScanRequest,
    Variant,
)
from cyberguard.policies import PollPolicyTable
from cyberguard.settings import env, env_int

logger = logging.getLogger(__name__)

VT_BASE = "https://www.virustotal.com/api/v3"
MAX_THREAT_NAMES = 10

Sleep = Callable[[float], None]


class PollState(StrEnum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


@dataclass
class PollOutcome:
    state: PollState
    analysis_id: str
    attempts: int
    report: IntelReport | None = None


def url_identifier(url: str) -> str:
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


def _threat_names(attrs: dict[str, Any]) -> list[str]:
    names = [str(n) for n in attrs.get("threat_names") or [] if n]
    if not names:
        popular = attrs.get("popular_threat_classification") or {}
        label = popular.get("suggested_threat_label")
        if label:
            names.append(str(label))
        for entry in popular.get("popular_threat_name") or []:
            value = entry.get("value") if isinstance(entry, dict) else None
            if value:
                names.append(str(value))
    if not names:
        results = attrs.get("last_analysis_results") or attrs.get("results") or {}
        for info in results.values():
            if isinstance(info, dict) and info.get("category") == "malicious" and info.get("result"):
                names.append(str(info["result"]))
    deduped: list[str] = []
    for name in names:
        if name not in deduped:
            deduped.append(name)
    return deduped[:MAX_THREAT_NAMES]


def intel_from_attributes(attrs: dict[str, Any], stats_key: str, analysis_id: str | None = None) -> IntelReport:
    reputation = attrs.get("reputation")
    categories = attrs.get("categories") or {}
    return IntelReport(
        stats=ProviderStats.model_validate(attrs.get(stats_key) or {}),
        metadata=ProviderMetadata(
            reputation=int(reputation) if isinstance(reputation, (int, float)) else None,
            threat_names=_threat_names(attrs),
            categories={str(k): str(v) for k, v in categories.items()} if isinstance(categories, dict) else {},
        ),
        analysis_id=analysis_id,
    )


class VirusTotalClient:
    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout_seconds: int = 15,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ProviderLookupError("Missing VirusTotal API key (set VIRUSTOTAL_API_KEY)")
        self.api_key = api_key
        self.base_url = (base_url or VT_BASE).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls, session: requests.Session | None = None) -> VirusTotalClient:
        return cls(
            api_key=env("VIRUSTOTAL_API_KEY") or "",
            base_url=env("CYBERGUARD_VT_BASE_URL"),
            timeout_seconds=env_int("CYBERGUARD_VT_TIMEOUT_SECONDS", 15),
            session=session,
        )

    def _request(self, method: str, path: str, allow_missing: bool = False, **kwargs: Any) -> dict[str, Any] | None:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"x-apikey": self.api_key, "Accept": "application/json"}
        logger.debug("VirusTotal %s %s", method, path)
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise ProviderLookupError(f"VirusTotal network error: {exc}") from exc
        if resp.status_code == 404 and allow_missing:
            return None
        if resp.status_code >= 400:
            raise ProviderLookupError(
                f"VirusTotal HTTP error {resp.status_code}: {resp.text[:300]}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderLookupError("VirusTotal returned a non-JSON response") from exc
        if not isinstance(payload, dict):
            raise ProviderLookupError("VirusTotal returned an unexpected payload")
        return payload

    def lookup_url(self, url: str) -> IntelReport | None:
        payload = self._request("GET", f"urls/{url_identifier(url)}", allow_missing=True)
        if payload is None:
            return None
        attrs = payload.get("data", {}).get("attributes", {})
        return intel_from_attributes(attrs, "last_analysis_stats")

    def lookup_hash(self, digest: str) -> IntelReport | None:
        payload = self._request("GET", f"files/{digest}", allow_missing=True)
        if payload is None:
            return None
        attrs = payload.get("data", {}).get("attributes", {})
        return intel_from_attributes(attrs, "last_analysis_stats")

    def submit_url(self, url: str) -> str:
        payload = self._request("POST", "urls", data={"url": url})
        return self._analysis_id(payload)

    def submit_file(self, filename: str, data: bytes) -> str:
        payload = self._request("POST", "files", files={"file": (filename, data)})
        return self._analysis_id(payload)

    def get_analysis(self, analysis_id: str) -> tuple[str, IntelReport]:
        payload = self._request("GET", f"analyses/{analysis_id}") or {}
        attrs = payload.get("data", {}).get("attributes", {})
        status = str(attrs.get("status", "queued"))
        return status, intel_from_attributes(attrs, "stats", analysis_id=analysis_id)

    @staticmethod
    def _analysis_id(payload: dict[str, Any] | None) -> str:
        analysis_id = (payload or {}).get("data", {}).get("id")
        if not analysis_id:
            raise ProviderLookupError("VirusTotal submission returned no analysis id")
        return str(analysis_id)


def poll_analysis(
    client: VirusTotalClient, analysis_id: str, policy: PollPolicy, sleep: Sleep = time.sleep
) -> PollOutcome:
    outcome = PollOutcome(state=PollState.SUBMITTED, analysis_id=analysis_id, attempts=0)
    while outcome.attempts < policy.max_attempts:
        outcome.state = PollState.POLLING
        outcome.attempts += 1
        sleep(policy.delay_seconds)
        status, report = client.get_analysis(analysis_id)
        logger.debug("Analysis %s attempt %d/%d: %s", analysis_id, outcome.attempts, policy.max_attempts, status)
        if status == "completed":
            outcome.state = PollState.COMPLETED
            outcome.report = report
            return outcome
    outcome.state = PollState.TIMED_OUT
    logger.warning("Analysis %s still pending after %d attempts", analysis_id, outcome.attempts)
    return outcome


def _resolve_outcome(outcome: PollOutcome, policy: PollPolicy, request: ScanRequest) -> IntelReport | ScanQueued:
    if outcome.state is PollState.COMPLETED and outcome.report is not None:
        return outcome.report
    if policy.on_exhausted is ExhaustionAction.QUEUE:
        return ScanQueued(
            analysis_id=outcome.analysis_id,
            input_label=request.raw_input,
            variant_label=request.variant_label,
        )
    raise PollTimeoutError(outcome.analysis_id, outcome.attempts)


def fetch_intel(
    request: ScanRequest,
    client: VirusTotalClient,
    policies: PollPolicyTable,
    sleep: Sleep = time.sleep,
) -> IntelReport | ScanQueued:
    policy = policies.for_variant(request.variant)

    if request.variant is Variant.HASH:
        report = client.lookup_hash(request.raw_input.strip().lower())
        if report is None:
            raise ProviderLookupError(f"Hash not found: {request.raw_input}", status_code=404)
        return report

    if request.variant is Variant.URL:
        url = request.raw_input.strip()
        report = client.lookup_url(url)
        if report is not None:
            return report
        logger.info("URL not previously analyzed, submitting: %s", url)
        analysis_id = client.submit_url(url)
    else:
        if not request.file_bytes:
            raise ScanError("Valid file is required")
        analysis_id = client.submit_file(request.raw_input, request.file_bytes)

    outcome = poll_analysis(client, analysis_id, policy, sleep=sleep)
    return _resolve_outcome(outcome, policy, request)
