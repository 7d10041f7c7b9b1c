"""Tests for graphtools.safety.guardian."""

import pytest

from graphtools.safety.guardian import SafetyGuardian, SafetyViolation

from conftest import USER_ID, guid

BASE = "https://graph.microsoft.com/v1.0"
GROUP_ID = guid(1)


class TestReads:
    @pytest.mark.parametrize("method", ["GET", "get", "HEAD", "OPTIONS"])
    def test_reads_always_allowed(self, method):
        for guardian in (SafetyGuardian(dry_run=True), SafetyGuardian()):
            assert guardian.validate_request(method, f"{BASE}/users/{USER_ID}")
        assert guardian.mutations == []

    def test_unknown_method(self):
        guardian = SafetyGuardian()
        with pytest.raises(SafetyViolation):
            guardian.validate_request("TRACE", f"{BASE}/users")
        assert guardian.violations[0]["reason"] == "Unknown HTTP method"


class TestDryRun:
    @pytest.mark.parametrize("method,endpoint", [
        ("DELETE", f"groups/{GROUP_ID}/members/{USER_ID}/$ref"),
        ("POST", f"users/{USER_ID}/assignLicense"),
        ("PATCH", f"users/{USER_ID}"),
    ])
    def test_every_write_blocked(self, method, endpoint):
        guardian = SafetyGuardian(dry_run=True)
        with pytest.raises(SafetyViolation):
            guardian.validate_request(method, f"{BASE}/{endpoint}")
        assert guardian.mutations == []
        assert len(guardian.violations) == 1


class TestLive:
    @pytest.mark.parametrize("method,endpoint", [
        ("DELETE", f"groups/{GROUP_ID}/members/{USER_ID}/$ref"),
        ("DELETE", f"groups/{GROUP_ID}/owners/{USER_ID}/$ref"),
        ("DELETE", f"servicePrincipals/{GROUP_ID}/owners/{USER_ID}/$ref"),
        ("DELETE", f"applications/{GROUP_ID}/owners/{USER_ID}/$ref"),
        ("DELETE", f"users/{USER_ID}/appRoleAssignments/AbC_dEf-123"),
        ("DELETE", "roleManagement/directory/roleAssignments/lAPpYvVpN0KRkAEhdxReEJC2sEqbR_9Hr48lds9SGHI-1"),
        ("DELETE", f"directory/administrativeUnits/{GROUP_ID}/members/{USER_ID}/$ref"),
        ("DELETE", "oauth2PermissionGrants/l5eW7x0ga0-WDOntXzHateQDNpSH5-lPk9HjD3Sarjk"),
        ("POST", f"users/{USER_ID}/assignLicense"),
        ("POST", "identityGovernance/entitlementManagement/assignmentRequests"),
        ("POST", "roleManagement/directory/roleEligibilityScheduleRequests"),
        ("POST", "roleManagement/directory/roleAssignmentScheduleRequests"),
    ])
    def test_removal_endpoints_allowed_and_audited(self, method, endpoint):
        guardian = SafetyGuardian()
        assert guardian.validate_request(method, f"{BASE}/{endpoint}", {"k": "v"})
        assert guardian.mutations[0]["method"] == method
        assert guardian.mutations[0]["body"] == {"k": "v"}
        assert guardian.violations == []

    @pytest.mark.parametrize("method,endpoint", [
        ("PATCH", f"users/{USER_ID}"),
        ("DELETE", f"users/{USER_ID}"),
        ("DELETE", f"groups/{GROUP_ID}"),
        ("POST", f"groups/{GROUP_ID}/members/$ref"),
        ("POST", "users"),
        ("DELETE", f"groups/{GROUP_ID}/members/{USER_ID}/$ref/extra"),
        ("POST", f"users/{USER_ID}/assignLicense/../../../groups"),
    ])
    def test_other_writes_blocked(self, method, endpoint):
        guardian = SafetyGuardian()
        with pytest.raises(SafetyViolation):
            guardian.validate_request(method, f"{BASE}/{endpoint}")
        assert guardian.mutations == []

    def test_query_string_ignored_for_matching(self):
        guardian = SafetyGuardian()
        with pytest.raises(SafetyViolation):
            guardian.validate_request("DELETE", f"{BASE}/users/{USER_ID}?x=/oauth2PermissionGrants/abc")


class TestAuditRecord:
    def test_live_record(self):
        guardian = SafetyGuardian()
        guardian.validate_request("GET", f"{BASE}/users")
        guardian.validate_request("POST", f"{BASE}/users/{USER_ID}/assignLicense")
        record = guardian.get_audit_record()["safety_guardian"]
        assert record["mode"] == "LIVE"
        assert record["checks_performed"] == 2
        assert record["mutations_performed"] == 1
        assert record["status"] == "CLEAN"

    def test_dry_run_record_with_violation(self):
        guardian = SafetyGuardian(dry_run=True)
        with pytest.raises(SafetyViolation):
            guardian.validate_request("DELETE", f"{BASE}/oauth2PermissionGrants/abc")
        record = guardian.get_audit_record()["safety_guardian"]
        assert record["mode"] == "DRY-RUN"
        assert record["status"] == "VIOLATIONS_DETECTED"

    def test_banner(self, capsys):
        SafetyGuardian(dry_run=True).print_banner()
        assert "DRY RUN" in capsys.readouterr().out
