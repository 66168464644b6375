"""Prometheus metrics configuration."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Histogram,
    Info,
)


# Application info
APP_INFO = Info("iac_orchestrator", "IaC deployment orchestrator application info")
APP_INFO.info({
    "version": "1.0.0",
    "service": "iac-deployment-orchestrator",
})

# Deployment metrics
DEPLOYMENTS_TOTAL = Counter(
    "iac_orchestrator_deployments_total",
    "Total number of deployment runs by terminal status",
    ["status", "dry_run"],
)

DEPLOYMENT_DURATION = Histogram(
    "iac_orchestrator_deployment_duration_seconds",
    "Wall-clock duration of deployment runs",
    ["status"],
    buckets=[10, 30, 60, 120, 300, 600, 1800, 3600],
)

# Stage metrics
STAGE_EXECUTIONS_TOTAL = Counter(
    "iac_orchestrator_stage_executions_total",
    "Total number of stage executions",
    ["stage", "result"],  # result: success/failure/skipped/verification_failed
)

STAGE_DURATION = Histogram(
    "iac_orchestrator_stage_duration_seconds",
    "Time taken for stage execution including retries",
    ["stage"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 900, 1800],
)

STAGE_RETRIES = Counter(
    "iac_orchestrator_stage_retries_total",
    "Total number of stage retry attempts",
    ["stage"],
)

CHECKPOINTS_TOTAL = Counter(
    "iac_orchestrator_checkpoints_total",
    "Total number of checkpoints written",
    ["stage"],
)

# Repository cache metrics
REPOSITORY_SYNCS_TOTAL = Counter(
    "iac_orchestrator_repository_syncs_total",
    "Total repository sync attempts",
    ["operation", "result"],  # operation: clone/fetch/fresh
)

REPOSITORY_SYNC_DURATION = Histogram(
    "iac_orchestrator_repository_sync_duration_seconds",
    "Duration of repository clone and fetch operations",
    ["operation"],
    buckets=[0.5, 1, 5, 10, 30, 60, 300],
)
