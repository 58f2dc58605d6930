from bulkimport.validation import check_headers, is_strong_password, validate_rows


def good_row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "username": "ada_lovelace",
        "email": "ada@example.com",
        "password": "SecurePass123!",
        "firstName": " Ada ",
        "lastName": "",
        "userType": "3",
        "isActive": "",
    }
    row.update(overrides)
    return row


def test_valid_row_becomes_trimmed_record() -> None:
    result = validate_rows([good_row()])

    assert result.valid is True
    record = result.valid_records[0]
    assert record.username == "ada_lovelace"
    assert record.first_name == "Ada"
    assert record.last_name is None
    assert record.user_type == 3
    assert record.is_active is True


def test_username_with_space_and_symbol_is_rejected() -> None:
    rows = [good_row(), good_row(username="bad name!", email="bad@example.com")]

    result = validate_rows(rows)

    assert [error.field for error in result.errors] == ["username"]
    assert result.errors[0].row == 3
    assert [record.username for record in result.valid_records] == ["ada_lovelace"]
    assert result.invalid_rows == 1
    assert result.valid_rows == 1


def test_row_collects_every_field_error() -> None:
    row = {"username": "", "email": "not-an-email", "password": "short", "userType": "7", "isActive": "maybe"}

    result = validate_rows([row])

    assert [error.field for error in result.errors] == ["username", "email", "password", "userType", "isActive"]
    assert all(error.row == 2 for error in result.errors)
    password_error = result.errors[2]
    assert password_error.value == "***"
    assert result.valid_records == ()


def test_is_active_parsing_is_case_insensitive() -> None:
    rows = [
        good_row(username="a1", email="a1@example.com", isActive="FALSE"),
        good_row(username="a2", email="a2@example.com", isActive="0"),
        good_row(username="a3", email="a3@example.com", isActive="True"),
        good_row(username="a4", email="a4@example.com", isActive=None),
    ]

    result = validate_rows(rows)

    assert [record.is_active for record in result.valid_records] == [False, False, True, True]


def test_user_type_must_be_integer_in_range() -> None:
    rows = [
        good_row(username="t1", email="t1@example.com", userType="1"),
        good_row(username="t2", email="t2@example.com", userType=2),
        good_row(username="t3", email="t3@example.com", userType="2.5"),
        good_row(username="t4", email="t4@example.com", userType=None),
        good_row(username="t5", email="t5@example.com", userType="0"),
    ]

    result = validate_rows(rows)

    assert [record.user_type for record in result.valid_records] == [1, 2]
    assert [error.row for error in result.errors] == [4, 5, 6]


def test_user_type_accepts_integral_floats() -> None:
    rows = [
        good_row(username="f1", email="f1@example.com", userType=2.0),
        good_row(username="f2", email="f2@example.com", userType="1.0"),
        good_row(username="f3", email="f3@example.com", userType=2.5),
    ]

    result = validate_rows(rows)

    assert [record.user_type for record in result.valid_records] == [2, 1]
    assert [(error.row, error.field) for error in result.errors] == [(4, "userType")]


def test_password_strength_rules() -> None:
    assert is_strong_password("SecurePass123!")
    assert not is_strong_password("Sh0rt!")
    assert not is_strong_password("securepass123!")
    assert not is_strong_password("SECUREPASS123!")
    assert not is_strong_password("SecurePass!!!")
    assert not is_strong_password("SecurePass123")


def test_missing_columns_reported_at_row_zero() -> None:
    rows = [{"username": "ada", "email": "ada@example.com"}]

    result = validate_rows(rows)

    header_errors = [error for error in result.errors if error.field == "headers"]
    assert [error.message for error in header_errors] == [
        "Missing required column: password",
        "Missing required column: userType",
    ]
    assert all(error.row == 0 for error in header_errors)
    assert result.invalid_rows == 1


def test_too_many_rows_does_not_stop_row_checks() -> None:
    rows = [good_row(username=f"user_{index}", email=f"user{index}@example.com") for index in range(4)]

    result = validate_rows(rows, max_rows=3)

    assert result.errors[0].field == "file"
    assert result.errors[0].row == 0
    assert result.errors[0].value == 4
    assert result.valid_rows == 4
    assert result.valid is False


def test_duplicate_username_and_email_rejected_after_first() -> None:
    rows = [
        good_row(),
        good_row(username="ADA_LOVELACE", email="other@example.com"),
        good_row(username="someone_else", email="ADA@example.com"),
    ]

    result = validate_rows(rows)

    assert [record.username for record in result.valid_records] == ["ada_lovelace"]
    assert [(error.row, error.field) for error in result.errors] == [(3, "username"), (4, "email")]


def test_malformed_values_become_errors_not_exceptions() -> None:
    rows = [{"username": 12, "email": None, "password": ["x"], "userType": {"a": 1}, "isActive": 3}]

    result = validate_rows(rows)

    assert result.valid is False
    assert result.total_rows == 1
    assert result.invalid_rows == 1


def test_bookkeeping_and_purity() -> None:
    rows = [good_row(), good_row(username="bad name!", email="x@example.com"), {}]

    first = validate_rows(rows)
    second = validate_rows(rows)

    assert first == second
    assert first.valid_rows + first.invalid_rows == first.total_rows
    assert (len(first.errors) == 0) == first.valid


def test_empty_input_is_valid() -> None:
    result = validate_rows([])

    assert result.valid is True
    assert result.total_rows == 0


def test_check_headers_is_case_insensitive_and_reports_extras() -> None:
    check = check_headers([" Username", "EMAIL", "password", "usertype", "firstname", "department"])

    assert check.valid is True
    assert check.missing == ()
    assert check.extra == ("department",)


def test_surrounding_whitespace_fails_username_and_email_patterns() -> None:
    result = validate_rows([good_row(username=" ada_lovelace", email="ada@example.com ")])

    assert [error.field for error in result.errors] == ["username", "email"]
