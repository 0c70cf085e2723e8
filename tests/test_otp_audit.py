import check_otp_audit
from bgv_otp.models.otp_token import OTPStatus

PHONE = "9999999999"


def test_audit_lists_history_without_codes(db, service, gateway, clock, capsys):
    service.issue(PHONE, "account_setup")
    clock.advance(seconds=30)
    service.resend(PHONE, "account_setup")
    code = gateway.last_code()

    history = check_otp_audit.run(["99999-99999", "8888888888"], db=db)

    assert [t.status for t in history[PHONE]] == [OTPStatus.ACTIVE, OTPStatus.SUPERSEDED]
    assert history["8888888888"] == []

    out = capsys.readouterr().out
    assert "******9999: 2 OTP(s)" in out
    assert "******8888: no OTPs issued" in out
    assert "superseded" in out
    assert code not in out
