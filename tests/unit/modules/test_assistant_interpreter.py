import pytest

from app.modules.assistant.domain.interpreter import (
    COMMAND_PATTERNS,
    SUGGESTIONS,
    interpret,
    suggestions_for,
)


@pytest.mark.parametrize(
    "phrase,action",
    [
        ("Create a new web server", "create_instance"),
        ("launch something", "create_instance"),
        ("please start the vm", "create_instance"),
        ("List my databases", "list_resources"),
        ("terminate the old box", "delete_resource"),
        ("scale up my web servers", "scale_resources"),
        ("check system health", "show_monitoring"),
        ("what is my current spending?", "show_billing"),
        ("review vulnerability findings", "show_security"),
        ("tell me a joke", "help"),
    ],
)
def test_phrase_to_action(phrase, action):
    assert interpret(phrase, "aws")["action"] == action


@pytest.mark.parametrize(
    "phrase,action",
    [
        # "show" wins over "billing": list_resources sits earlier in the table.
        ("show me billing", "list_resources"),
        # "create" wins over "delete".
        ("create then delete", "create_instance"),
        # "status" (monitoring) is checked before "security".
        ("security status", "show_monitoring"),
        # "upgrade" (scale) is checked before "cost" (billing).
        ("upgrade to cut cost", "scale_resources"),
    ],
)
def test_first_matching_pattern_wins(phrase, action):
    assert interpret(phrase, "gcp")["action"] == action


def test_pattern_table_order():
    assert [p.action for p in COMMAND_PATTERNS] == [
        "create_instance",
        "list_resources",
        "delete_resource",
        "scale_resources",
        "show_monitoring",
        "show_billing",
        "show_security",
    ]


def test_matching_is_case_insensitive():
    assert interpret("DELETE EVERYTHING", "aws")["action"] == "delete_resource"


def test_help_echoes_input():
    response = interpret("make me a sandwich", "ibm")
    assert response["message"] == 'I understand you want to: "make me a sandwich"'
    assert response["details"]["provider"] == "ibm"
    assert response["details"]["availableCommands"]


def test_create_suggests_provider_default_sku():
    details = interpret("create an instance", "azure")["details"]
    assert details["suggestedConfig"]["instanceType"] == "Standard_B2s"
    assert details["suggestedConfig"]["estimatedCost"] == "$30.37/month"


def test_listing_uses_demo_inventory():
    details = interpret("list resources", "aws")["details"]
    names = [r["name"] for r in details["resources"]["instances"]]
    assert "web-server-01" in names
    assert details["resources"]["databases"][0]["engine"] == "PostgreSQL"


def test_billing_summary_is_marked_estimated():
    details = interpret("how much does this cost", "gcp")["details"]
    assert details["currentMonth"] == "$1,923.45"
    assert details["trend"] == "-10.8% from last month"
    assert details["estimated"] is True


@pytest.mark.parametrize("provider", ["aws", "gcp", "azure", "ibm"])
def test_every_builder_works_for_every_provider(provider):
    for phrase in (
        "create vm",
        "list",
        "delete",
        "scale",
        "monitor",
        "budget",
        "permission",
        "???",
    ):
        response = interpret(phrase, provider)
        assert set(response) == {"action", "message", "details"}


def test_suggestions_by_category():
    assert suggestions_for("monitor") == SUGGESTIONS["monitor"]
    assert len(suggestions_for(None)) == sum(len(v) for v in SUGGESTIONS.values())
    assert suggestions_for("unknown") == suggestions_for(None)
