import pytest

from nool.names import MAX_NAME_LENGTH, InvalidNameError, allocate_name, validate_name


def test_validate_name_trims() -> None:
    assert validate_name("  notes.tex ") == "notes.tex"
    assert validate_name("a") == "a"
    assert validate_name("x" * MAX_NAME_LENGTH) == "x" * MAX_NAME_LENGTH
    assert validate_name("Console") == "Console"
    assert validate_name("COM0") == "COM0"


@pytest.mark.parametrize(
    ("name", "reason"),
    [
        (None, "Name is required"),
        ("", "Name is required"),
        (123, "Name is required"),
        ("   ", "Name cannot be empty"),
        ("x" * (MAX_NAME_LENGTH + 1), "Name is too long (max 255 characters)"),
        ("a/b", "Name contains invalid characters"),
        ("a\\b", "Name contains invalid characters"),
        ("what?", "Name contains invalid characters"),
        ('say "hi"', "Name contains invalid characters"),
        ("tab\there", "Name contains invalid characters"),
        ("nul\x00", "Name contains invalid characters"),
        ("CON", "Name is reserved"),
        ("aux", "Name is reserved"),
        ("Lpt9", "Name is reserved"),
        (" com1 ", "Name is reserved"),
    ],
)
def test_validate_name_rejects(name: object, reason: str) -> None:
    with pytest.raises(InvalidNameError) as exc:
        validate_name(name)
    assert exc.value.reason == reason
    assert str(exc.value) == reason


def test_validate_name_length_is_checked_after_trimming() -> None:
    padded = " " + "x" * MAX_NAME_LENGTH + " "
    assert validate_name(padded) == "x" * MAX_NAME_LENGTH


def test_invalid_name_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        validate_name("")


def test_allocate_name_base_when_free() -> None:
    assert allocate_name("NewFolder", []) == "NewFolder"
    assert allocate_name("NewFolder", ["Other", "NewFolder1"]) == "NewFolder"


def test_allocate_name_counts_up() -> None:
    assert allocate_name("NewFolder", ["NewFolder"]) == "NewFolder1"
    assert allocate_name("NewFolder", ["NewFolder", "NewFolder1", "NewFolder2"]) == "NewFolder3"
    # Gaps are filled first.
    assert allocate_name("NewFolder", ["NewFolder", "NewFolder2"]) == "NewFolder1"


def test_allocate_name_with_extension() -> None:
    assert allocate_name("NewFile", [], ".tex") == "NewFile.tex"
    assert allocate_name("NewFile", ["NewFile.tex", "NewFile"], ".tex") == "NewFile1.tex"


def test_allocate_name_is_case_sensitive() -> None:
    assert allocate_name("NewFolder", ["newfolder"]) == "NewFolder"


def test_allocate_name_never_returns_existing() -> None:
    existing = {"NewFolder"} | {f"NewFolder{i}" for i in range(1, 50)}
    name = allocate_name("NewFolder", existing)
    assert name not in existing
    assert name == "NewFolder50"
