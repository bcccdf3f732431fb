from verification_codes import VerificationCodeStore


def test_exact_match_is_valid():
    store = VerificationCodeStore()
    store.set_captured("A", "K7QX")
    assert store.validate("A", "K7QX") is True
    assert store.is_valid("A")


def test_comparison_is_case_sensitive_and_untrimmed():
    store = VerificationCodeStore()
    store.set_captured("A", "k7qx")
    assert store.validate("A", "K7QX") is False
    store.set_captured("A", " K7QX")
    assert store.validate("A", "K7QX") is False


def test_new_capture_resets_validity():
    store = VerificationCodeStore()
    store.set_captured("A", "K7QX")
    store.validate("A", "K7QX")
    store.set_captured("A", "K7Q")
    assert not store.is_valid("A")


def test_missing_expected_code_never_validates():
    store = VerificationCodeStore()
    store.set_captured("A", "")
    assert store.validate("A", None) is False
    assert store.validate("A", "") is False


def test_exempt_link_is_always_valid():
    store = VerificationCodeStore()
    store.mark_exempt("B")
    assert store.is_valid("B")
    store.set_captured("B", "whatever")
    assert store.validate("B", None) is True
    assert "B" not in store.to_dict()


def test_unknown_link_is_not_valid():
    store = VerificationCodeStore()
    assert not store.is_valid("A")
    assert store.entry("A").captured_code == ""


def test_restore_revalidates_instead_of_trusting_flags():
    store = VerificationCodeStore()
    store.restore(
        {"A": {"captured_code": "K7QX", "is_valid": False},
         "B": {"captured_code": "nope", "is_valid": True},
         "C": "junk"},
        expected={"A": "K7QX", "B": "M2RD"},
    )
    assert store.is_valid("A")
    assert not store.is_valid("B")
    assert not store.is_valid("C")
