"""
Tests for the rule-table classifier
"""
import pytest

from elasticops.agents.classifier import CATEGORY_RULES, SEVERITY_RULES, classify_text, first_match


class TestCategoryRules:

    @pytest.mark.parametrize("text, expected", [
        ("Cannot login after reset", "authentication"),
        ("Invoice shows wrong amount", "billing"),
        ("Dashboard is slow", "performance"),
        ("Webhook deliveries failing", "integration"),
        ("Records missing after sync", "data"),
        ("Full outage reported", "incident"),
    ])
    def test_keyword_selects_category(self, text, expected):
        assert classify_text(text, "").category == expected

    def test_first_matching_rule_wins(self):
        """'login' (authentication) is listed before 'slow' (performance)"""
        result = classify_text("Login page is slow", "")
        assert result.category == "authentication"

    def test_matching_is_case_insensitive(self):
        assert classify_text("PASSWORD expired", None).category == "authentication"

    def test_falls_back_to_current_category(self):
        result = classify_text("Hello there", "Nothing to see", current_category="billing")
        assert result.category == "billing"

    def test_falls_back_to_general(self):
        assert classify_text("Hello there", "Nothing to see").category == "general"


class TestSeverityRules:

    def test_critical_keyword(self):
        result = classify_text("URGENT: site down", "")
        assert (result.severity, result.priority) == ("critical", "p1")

    def test_high_keyword(self):
        result = classify_text("Need this asap", "")
        assert (result.severity, result.priority) == ("high", "p2")

    def test_low_keyword(self):
        result = classify_text("Quick question", "")
        assert (result.severity, result.priority) == ("low", "p4")

    def test_default_severity(self):
        result = classify_text("Hello", "World")
        assert (result.severity, result.priority) == ("medium", "p3")

    def test_keeps_existing_severity_when_no_rule_matches(self):
        result = classify_text("Hello", "World", current_severity="high", current_priority="p2")
        assert (result.severity, result.priority) == ("high", "p2")


class TestDeterminism:

    def test_same_input_same_output(self):
        first = classify_text("Payment failed", "Card declined twice, urgent")
        second = classify_text("Payment failed", "Card declined twice, urgent")
        assert first == second

    def test_first_match_returns_none_without_match(self):
        assert first_match(CATEGORY_RULES, "nothing relevant") is None
        assert first_match(SEVERITY_RULES, "nothing relevant") is None
