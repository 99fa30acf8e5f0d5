#!/usr/bin/env python3
"""
should-spawn-data-classification.py — Decide whether the data-classification agent runs.

Triggers on infrastructure and secret-bearing paths (Terraform, Kubernetes/Helm,
CloudFormation, env files, schemas, API handlers) and on sensitive-data
keywords in the patch (secrets, crypto, PII, logging calls).

Prints JSON to stdout: {"spawn": bool, "reason": str}
"""

import os
import re
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from github_utils import emit_json, env_flag, fetch_pr_files, fetch_pr_labels, load_github_context, log
from review_models import SpawnDecision, coerce_changed_files
from signal_patterns import SignalPattern, check_gates, decide_from_signals, keyword_regex, scan_signals

# A bare .yml (CI config, workflow) must not count as Kubernetes/Helm; the
# path has to look like deployment config too.
K8S_PATH_CONTEXT = re.compile(r"k8s|kubernetes|helm|chart|deploy|manifests?", re.IGNORECASE)

PATTERNS = (
    SignalPattern("Terraform/IaC files", re.compile(r"\.tf$|\.tfvars$")),
    SignalPattern("Kubernetes/Helm configs", re.compile(r"\.(ya?ml)$", re.IGNORECASE), context=K8S_PATH_CONTEXT),
    SignalPattern("CloudFormation templates", re.compile(r"cloudformation|cfn", re.IGNORECASE)),
    SignalPattern("environment/secret files", re.compile(r"(^|/)\.env|secret|credential", re.IGNORECASE)),
    SignalPattern("database/schema files", re.compile(r"migration|schema|model", re.IGNORECASE)),
    SignalPattern(
        "API route/handler files",
        re.compile(
            r"routes?\.[jt]sx?$|controllers?\.[jt]sx?$|handlers?\.[jt]sx?$|middleware\.[jt]sx?$|api/",
            re.IGNORECASE,
        ),
    ),
)

SENSITIVE_KEYWORDS = keyword_regex([
    # Secrets
    "password", "secret", "api_key", "apiKey", "private_key", "privateKey", "credential", "token",
    # Crypto
    "encrypt", "decrypt", "kms", "AES", "TLS",
    # PII
    "email", "phone", "ssn", "date_of_birth", "dateOfBirth", "personal", "pii", "gdpr",
    # Logging
    r"console\.log", r"logger\.", r"log\.", "logging",
])


def should_spawn_data_classification(files, labels=None, force: bool = False) -> SpawnDecision:
    files = coerce_changed_files(files)
    gated = check_gates(files, labels, force)
    if gated is not None:
        return gated

    reasons = scan_signals(
        files, PATTERNS, SENSITIVE_KEYWORDS,
        keyword_reason="sensitive data keywords in patch",
    )
    return decide_from_signals(reasons, "No data classification signals detected")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    context = load_github_context()
    if not context.pr_number:
        emit_json(SpawnDecision(spawn=False, reason="Not a pull request event").to_dict())
        return

    force = env_flag(os.environ, "FORCE_DATA_CLASSIFICATION_AGENT")
    files = fetch_pr_files(context)
    labels = fetch_pr_labels(context)

    result = should_spawn_data_classification(files, labels, force)
    log(f'Decision: spawn={result.spawn}, reason="{result.reason}"')
    emit_json(result.to_dict())


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        log(f"ERROR: {e}")
        emit_json({"spawn": False, "reason": f"Error: {e}"})
        sys.exit(0)
