"""
Phrase-matched command assistant.

An ordered table of (action, pattern, builder). Patterns overlap, so the
table is scanned top to bottom and the first match wins; unmatched input
gets the help response.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable

from app.modules.billing.domain.estimates import BILLING_FIXTURES
from app.modules.security.domain.posture import SECURITY_FIXTURES
from app.schemas.resources import ResourceKind
from app.shared.adapters.demo import DEMO_REGIONS, demo_resources
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_instance_cost,
    format_monthly_cost,
)

Builder = Callable[[str, str], dict[str, Any]]

SUGGESTIONS: dict[str, list[str]] = {
    "create": [
        "Create a new web server instance",
        "Launch a database for my application",
        "Set up a load balancer",
        "Create a storage bucket for backups",
    ],
    "manage": [
        "Show me all my running instances",
        "List my databases and their status",
        "Display storage usage across regions",
        "Check which resources are costing the most",
    ],
    "monitor": [
        "What is the current system health?",
        "Show me CPU usage for the last hour",
        "Are there any active alerts?",
        "How is my application performing?",
    ],
    "optimize": [
        "How can I reduce my cloud costs?",
        "Which instances are underutilized?",
        "Suggest auto-scaling configurations",
        "Identify unused resources",
    ],
}


@dataclass(frozen=True)
class CommandPattern:
    action: str
    pattern: re.Pattern[str]
    builder: Builder


def _create_instance(_input: str, provider: str) -> dict[str, Any]:
    sku = DEFAULT_INSTANCE_SKU[provider]
    return {
        "message": f"I'll help you create a new compute instance on {provider.upper()}.",
        "details": {
            "type": "instance_creation",
            "provider": provider,
            "suggestedConfig": {
                "instanceType": sku,
                "region": DEMO_REGIONS[provider],
                "estimatedCost": format_monthly_cost(estimate_instance_cost(provider, sku)),
            },
            "nextSteps": [
                "Choose instance type and size",
                "Select region and availability zone",
                "Configure security groups",
                "Review and launch",
            ],
        },
    }


def _summary(kind: ResourceKind, provider: str) -> list[dict[str, Any]]:
    fields = {"id", "name", "status", "sku", "engine"}
    return [
        r.model_dump(by_alias=True, include=fields, exclude_none=True)
        for r in demo_resources(provider, kind)
    ]


def _list_resources(_input: str, provider: str) -> dict[str, Any]:
    return {
        "message": f"Here are your current resources on {provider.upper()}:",
        "details": {
            "type": "resource_listing",
            "provider": provider,
            "resources": {
                "instances": _summary(ResourceKind.INSTANCES, provider),
                "databases": _summary(ResourceKind.DATABASES, provider),
            },
        },
    }


def _delete_resource(_input: str, provider: str) -> dict[str, Any]:
    return {
        "message": "I can help you safely delete resources.",
        "details": {
            "type": "resource_deletion",
            "provider": provider,
            "warning": "This action cannot be undone",
            "requirements": [
                "Specify the resource ID or name",
                "Confirm you have backed up important data",
                "Check for dependencies",
            ],
            "safetyChecks": [
                "Backup verification",
                "Dependency analysis",
                "User confirmation required",
            ],
        },
    }


def _scale_resources(_input: str, provider: str) -> dict[str, Any]:
    return {
        "message": f"I'll help you scale your {provider.upper()} resources.",
        "details": {
            "type": "resource_scaling",
            "provider": provider,
            "currentConfig": {
                "autoScalingGroups": 2,
                "currentCapacity": "3-8 instances",
                "cpuTarget": "70%",
                "scaleOutCooldown": "300 seconds",
            },
            "scalingOptions": [
                "Vertical scaling (instance size)",
                "Horizontal scaling (instance count)",
                "Auto-scaling configuration",
                "Load balancer adjustment",
            ],
        },
    }


def _show_monitoring(_input: str, provider: str) -> dict[str, Any]:
    return {
        "message": f"Current monitoring data for {provider.upper()}:",
        "details": {
            "type": "monitoring_data",
            "provider": provider,
            "systemHealth": "Good",
            "metrics": {"cpu": "67%", "memory": "45%", "network": "2.3 GB/s", "disk": "78%"},
            "alerts": [
                {"severity": "high", "message": "High CPU on primary instance", "time": "2 min ago"},
                {"severity": "medium", "message": "Memory warning on database server", "time": "15 min ago"},
            ],
            "synthetic": True,
        },
    }


def _show_billing(_input: str, provider: str) -> dict[str, Any]:
    fixture = BILLING_FIXTURES[provider]
    current = fixture["currentCost"]
    trend = fixture["trend"]
    return {
        "message": f"Billing information for {provider.upper()}:",
        "details": {
            "type": "billing_data",
            "provider": provider,
            "currentMonth": f"${current:,.2f}",
            "breakdown": {
                s["name"]: f"${s['cost']:,.2f} ({s['percentage']}%)"
                for s in fixture["services"]
            },
            "trend": f"{trend:+.1f}% from last month",
            "projectedAnnual": f"${current * 12 / 1000:.1f}K",
            "estimated": True,
        },
    }


def _show_security(_input: str, provider: str) -> dict[str, Any]:
    fixture = SECURITY_FIXTURES[provider]
    return {
        "message": f"Security overview for {provider.upper()}:",
        "details": {
            "type": "security_data",
            "provider": provider,
            "securityScore": f"{fixture['score']}/100",
            "status": "Good" if fixture["score"] >= 90 else "Warning",
            "summary": {m["label"]: m["value"] for m in fixture["metrics"]},
            "vulnerabilities": [
                {"severity": v["severity"], "issue": v["title"]}
                for v in fixture["vulnerabilities"]
            ],
        },
    }


def _help(raw_input: str, provider: str) -> dict[str, Any]:
    return {
        "message": f'I understand you want to: "{raw_input}"',
        "details": {
            "type": "help",
            "provider": provider,
            "availableCommands": [
                "Create - Launch new instances, databases, storage",
                "List/Show - Display your current resources",
                "Delete - Safely remove resources",
                "Scale - Resize or auto-scale resources",
                "Monitor - Check system health and metrics",
                "Cost - View billing and usage information",
                "Security - Review security settings and alerts",
            ],
            "examples": [
                "Create a new virtual machine",
                "Show me my running instances",
                "What is my current spending?",
                "Scale up my web servers",
                "Check system health",
            ],
        },
    }


def _p(expr: str) -> re.Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


COMMAND_PATTERNS: tuple[CommandPattern, ...] = (
    CommandPattern("create_instance", _p(r"create|launch|start.*(?:instance|vm|server|machine)"), _create_instance),
    CommandPattern("list_resources", _p(r"list|show|display.*(?:instance|vm|server|resource)"), _list_resources),
    CommandPattern("delete_resource", _p(r"delete|remove|terminate|destroy"), _delete_resource),
    CommandPattern("scale_resources", _p(r"scale|resize|upgrade|expand"), _scale_resources),
    CommandPattern("show_monitoring", _p(r"monitor|status|health|performance"), _show_monitoring),
    CommandPattern("show_billing", _p(r"cost|billing|price|spend|budget"), _show_billing),
    CommandPattern("show_security", _p(r"security|access|permission|vulnerability"), _show_security),
)
HELP_ACTION = "help"


def interpret(raw_input: str, provider: str) -> dict[str, Any]:
    """Returns ``{action, message, details}`` for the first matching pattern."""
    command = raw_input.strip().lower()
    for entry in COMMAND_PATTERNS:
        if entry.pattern.search(command):
            return {"action": entry.action, **entry.builder(raw_input, provider)}
    return {"action": HELP_ACTION, **_help(raw_input, provider)}


def suggestions_for(category: str | None) -> list[str]:
    if category and category in SUGGESTIONS:
        return list(SUGGESTIONS[category])
    return [s for group in SUGGESTIONS.values() for s in group]
