from __future__ import annotations

import logging
import time
from pathlib import Path

from cyberguard.ai import AIConfig
from cyberguard.classify import classify
from cyberguard.errors import ScanError
from cyberguard.models import ScanQueued, ScanRequest, ScanResult, Variant
from cyberguard.policies import PollPolicyTable, load_builtin_policies
from cyberguard.report import generate_report
from cyberguard.scoring import score
from cyberguard.threat_intel import Sleep, VirusTotalClient, fetch_intel

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def text_request(raw_input: str, is_dark_web_query: bool = False) -> ScanRequest:
    value = raw_input.strip()
    return ScanRequest(raw_input=value, variant=classify(value), is_dark_web_query=is_dark_web_query)


def file_request(filename: str, data: bytes) -> ScanRequest:
    if not data:
        raise ScanError("Valid file is required")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ScanError(f"File exceeds the {MAX_UPLOAD_BYTES // (1024 * 1024)} MiB upload limit")
    return ScanRequest(raw_input=filename, variant=Variant.FILE, file_bytes=data)


def file_request_from_path(path: Path) -> ScanRequest:
    return file_request(path.name, path.read_bytes())


def run_scan(
    request: ScanRequest,
    client: VirusTotalClient | None = None,
    policies: PollPolicyTable | None = None,
    ai_config: AIConfig | None = None,
    sleep: Sleep = time.sleep,
) -> ScanResult | ScanQueued:
    """Run one scan end to end.

    Raises ClassificationError, ProviderLookupError or PollTimeoutError on
    terminal failures. A file analysis that outlives its poll budget comes
    back as ScanQueued so the caller can check on it later.
    """
    client = client or VirusTotalClient.from_env()
    policies = policies or load_builtin_policies()

    logger.info("Scanning %s input: %s", request.variant.value, request.raw_input)
    intel = fetch_intel(request, client, policies, sleep=sleep)
    if isinstance(intel, ScanQueued):
        return intel

    risk = score(intel.stats, intel.metadata)
    report_text = generate_report(
        request.variant.value,
        request.raw_input,
        intel.stats,
        intel.metadata,
        is_dark_web_query=request.is_dark_web_query,
        config=ai_config,
    )
    return ScanResult(
        is_safe=risk.is_safe,
        safety_score=risk.safety_score,
        stats=intel.stats,
        metadata=intel.metadata,
        report_text=report_text,
        variant_label=request.variant_label,
        input_label=request.raw_input,
        is_dark_web_query=request.is_dark_web_query,
    )
