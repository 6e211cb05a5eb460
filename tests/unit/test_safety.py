"""
Tests for formatforge.core.safety module.
"""

from types import SimpleNamespace

from conftest import UNLETTERED_ID

from formatforge.core.config import SafetyConfig
from formatforge.core.models import EncryptionStatus, FileSystemKind, FormatRequest
from formatforge.core.safety import (
    FormatPlan,
    PreflightCheck,
    PreflightChecker,
    PreflightReport,
    SafetyManager,
    check_not_system_volume,
    check_power_status,
    check_refs_available,
    check_volume_unlocked,
    create_standard_preflight_checker,
    generate_confirmation_string,
)


class TestPreflightReport:
    """Tests for PreflightReport."""

    def test_all_passed(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=True, message="OK"),
            ]
        )
        assert report.all_passed is True
        assert report.has_errors is False
        assert report.has_warnings is False

    def test_has_errors(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=False, message="Error", severity="error"),
            ]
        )
        assert report.all_passed is False
        assert report.has_errors is True
        assert [c.name for c in report.errors] == ["Check 2"]

    def test_failed_warning_is_not_an_error(self) -> None:
        report = PreflightReport(
            checks=[PreflightCheck(name="Power", passed=False, message="On battery", severity="warning")]
        )
        assert report.has_warnings is True
        assert report.has_errors is False

    def test_get_summary(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=False, message="Failed"),
            ]
        )
        summary = report.get_summary()
        assert "1/2 checks passed" in summary
        assert "Check 1" in summary
        assert "Check 2" in summary


class TestConfirmation:
    """Tests for confirmation strings."""

    def test_letter(self) -> None:
        assert generate_confirmation_string("e:") == "FORMAT-E"

    def test_device_id_keeps_safe_characters(self) -> None:
        confirm = generate_confirmation_string(UNLETTERED_ID)
        assert confirm == "FORMAT-VOLUMEAAAAAAAA-BBBB-CCCC-DDDD-EEEEEEEEEEEE"

    def test_verify_correct(self) -> None:
        manager = SafetyManager(SafetyConfig())
        verified, message = manager.verify_confirmation("E:", " FORMAT-E ")
        assert verified is True
        assert message == "Confirmation verified"

    def test_verify_incorrect(self) -> None:
        manager = SafetyManager(SafetyConfig())
        verified, message = manager.verify_confirmation("E:", "format-e")
        assert verified is False
        assert "FORMAT-E" in message


class TestSafetyManager:
    """Tests for preflight setup from configuration."""

    def test_all_checks_enabled(self) -> None:
        checker = SafetyManager(SafetyConfig()).create_preflight_checker()
        assert checker is not None
        assert checker.check_names == ["System Volume", "ReFS Support", "BitLocker", "Power Status"]

    def test_toggles(self) -> None:
        config = SafetyConfig(
            system_volume_protection=False,
            encryption_check_enabled=False,
            power_check_enabled=False,
        )
        checker = SafetyManager(config).create_preflight_checker()
        assert checker is not None
        assert checker.check_names == ["ReFS Support"]

    def test_preflight_disabled(self) -> None:
        config = SafetyConfig(preflight_checks_enabled=False)
        assert SafetyManager(config).create_preflight_checker() is None


class TestFormatPlan:
    """Tests for FormatPlan."""

    def test_plan_text(self) -> None:
        plan = FormatPlan(
            request=FormatRequest(target="E:", filesystem=FileSystemKind.NTFS, label="DATA", allocation_unit=4096),
            target="E:",
            engines=["diskpart", "wmi"],
            warnings=["E: is BitLocker-protected"],
            confirmation_string="FORMAT-E",
        )

        text = plan.get_plan_text()

        assert "FORMAT: E:" in text
        assert "FILE SYSTEM: NTFS" in text
        assert "ALLOCATION UNIT: 4096 bytes" in text
        assert "E: is BitLocker-protected" in text
        assert "Quick format E: as NTFS labelled \"DATA\" using diskpart" in text
        assert "On failure, retry with wmi" in text
        assert "FORMAT-E" in text

    def test_lease_steps(self) -> None:
        plan = FormatPlan(
            request=FormatRequest(target=UNLETTERED_ID, filesystem=FileSystemKind.EXFAT, quick=False),
            target=UNLETTERED_ID,
            engines=["diskpart"],
            needs_lease=True,
        )
        assert plan.steps == [
            f"Attach a free drive letter to {UNLETTERED_ID} with mountvol",
            f"Full format {UNLETTERED_ID} as exFAT using diskpart",
            "Remove the temporary drive letter",
        ]

        plan.leased_letter = "G:"
        assert plan.steps[1] == "Full format G: as exFAT using diskpart"


class TestPreflightChecker:
    """Tests for PreflightChecker."""

    def test_add_and_run_checks(self) -> None:
        checker = PreflightChecker()
        checker.add_check("Always Pass", lambda ctx: True)
        checker.add_check("Always Fail", lambda ctx: False)

        report = checker.run_checks({})

        assert len(report.checks) == 2
        assert report.checks[0].passed is True
        assert report.checks[1].passed is False
        assert report.has_errors

    def test_check_exception_handling(self) -> None:
        checker = PreflightChecker()

        def failing_check(ctx: dict) -> bool:
            raise ValueError("Check error")

        checker.add_check("Failing Check", failing_check)
        report = checker.run_checks({})

        assert report.checks[0].passed is False
        assert report.checks[0].severity == "error"
        assert "Check error" in report.checks[0].message

    def test_standard_checker(self) -> None:
        checker = create_standard_preflight_checker()
        report = checker.run_checks({"letter": "E:", "system_drive": "C:", "filesystem": FileSystemKind.NTFS})
        assert report.all_passed


class TestPreflightFunctions:
    """Tests for preflight check functions."""

    def test_system_volume_refused(self) -> None:
        result = check_not_system_volume({"letter": "c:", "system_drive": "C:"})
        assert result.passed is False
        assert result.severity == "error"

    def test_other_volume_allowed(self) -> None:
        assert check_not_system_volume({"letter": "E:", "system_drive": "C:"}).passed

    def test_unlettered_volume_allowed(self) -> None:
        assert check_not_system_volume({"letter": None, "system_drive": "C:"}).passed

    def test_refs_missing(self) -> None:
        result = check_refs_available({"filesystem": FileSystemKind.REFS, "refs_available": False})
        assert result.passed is False
        assert result.severity == "error"

    def test_refs_present(self) -> None:
        assert check_refs_available({"filesystem": FileSystemKind.REFS, "refs_available": True}).passed

    def test_refs_driver_checked(self, mocker) -> None:
        mocker.patch("formatforge.platform.refs_driver_available", return_value=False)
        assert check_refs_available({"filesystem": FileSystemKind.REFS}).passed is False

    def test_refs_not_requested(self) -> None:
        assert check_refs_available({"filesystem": FileSystemKind.NTFS}).passed

    def test_locked_volume(self) -> None:
        status = EncryptionStatus(letter="E:", protection_status=1, lock_status=1)
        result = check_volume_unlocked({"encryption": status})
        assert result.passed is False
        assert result.severity == "error"

    def test_protected_volume(self) -> None:
        status = EncryptionStatus(letter="E:", protection_status=1, lock_status=0)
        result = check_volume_unlocked({"encryption": status})
        assert result.passed is True
        assert "removes the encryption" in result.message

    def test_query_failure_is_a_warning(self) -> None:
        status = EncryptionStatus(letter="E:", success=False, message="WMI namespace missing")
        result = check_volume_unlocked({"encryption": status})
        assert result.passed is True
        assert result.severity == "warning"

    def test_encryption_not_checked(self) -> None:
        assert check_volume_unlocked({}).passed

    def test_power_ignored_for_quick_format(self, mocker) -> None:
        battery = mocker.patch("psutil.sensors_battery")
        assert check_power_status({"quick": True}).passed
        battery.assert_not_called()

    def test_power_low_battery(self, mocker) -> None:
        mocker.patch(
            "psutil.sensors_battery",
            return_value=SimpleNamespace(power_plugged=False, percent=20),
        )
        result = check_power_status({"quick": False})
        assert result.passed is False
        assert result.severity == "error"

    def test_power_on_ac(self, mocker) -> None:
        mocker.patch(
            "psutil.sensors_battery",
            return_value=SimpleNamespace(power_plugged=True, percent=20),
        )
        assert check_power_status({"quick": False}).passed
