import pytest

from app.models.astrology import AccessToken, AstrologyRequest, ExplanationRequest, YearlyRequest
from app.services.errors import ValidationError

from conftest import BIRTH


def test_birth_details_wire_format():
    birth = AstrologyRequest(**BIRTH).birth_details()
    assert birth.iso_datetime == "2001-04-23T12:53:00+05:30"
    assert birth.coordinates == "28.6139,77.209"


@pytest.mark.parametrize("field", ["dob", "time", "latitude", "longitude", "timezone"])
def test_missing_field_rejected(field):
    body = dict(BIRTH)
    del body[field]
    with pytest.raises(ValidationError) as exc:
        AstrologyRequest(**body).birth_details()
    assert exc.value.public_message == "Missing birth details"
    assert exc.value.status_code == 400


def test_blank_string_counts_as_missing():
    with pytest.raises(ValidationError):
        AstrologyRequest(**dict(BIRTH, dob="  ")).birth_details()


def test_zero_coordinates_are_valid():
    birth = AstrologyRequest(**dict(BIRTH, latitude=0, longitude=0)).birth_details()
    assert birth.coordinates == "0.0,0.0"


def test_out_of_range_latitude_rejected():
    with pytest.raises(ValidationError):
        AstrologyRequest(**dict(BIRTH, latitude=91)).birth_details()


@pytest.mark.parametrize("dob", ["2001-04-23", "23/04/2001"])
def test_dob_formats(dob):
    assert AstrologyRequest(**dict(BIRTH, dob=dob)).birth_details().dob == "2001-04-23"


def test_impossible_date_rejected():
    with pytest.raises(ValidationError) as exc:
        AstrologyRequest(**dict(BIRTH, dob="2001-02-30")).birth_details()
    assert exc.value.public_message == "Missing birth details"
    assert "2001-02-30" in str(exc.value)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("12:53", "12:53:00"),
        ("9:05", "09:05:00"),
        ("12:53:17", "12:53:17"),
        ("12:53 PM", "12:53:00"),
        ("12:10 am", "00:10:00"),
        ("07:30 PM", "19:30:00"),
    ],
)
def test_time_formats(raw, expected):
    assert AstrologyRequest(**dict(BIRTH, time=raw)).birth_details().time == expected


@pytest.mark.parametrize("raw", ["25:00", "12:60", "noon"])
def test_bad_time_rejected(raw):
    with pytest.raises(ValidationError):
        AstrologyRequest(**dict(BIRTH, time=raw)).birth_details()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+05:30", "+05:30"),
        ("+0530", "+05:30"),
        ("-04:00", "-04:00"),
        ("5.5", "+05:30"),
        (5.75, "+05:45"),
        (-3, "-03:00"),
        ("Z", "+00:00"),
    ],
)
def test_timezone_formats(raw, expected):
    assert AstrologyRequest(**dict(BIRTH, timezone=raw)).birth_details().timezone == expected


@pytest.mark.parametrize("raw", ["IST", "+05:75", "+15:00"])
def test_bad_timezone_rejected(raw):
    with pytest.raises(ValidationError):
        AstrologyRequest(**dict(BIRTH, timezone=raw)).birth_details()


def test_numeric_strings_for_coordinates_are_accepted():
    birth = AstrologyRequest(**dict(BIRTH, latitude="28.6139", longitude="77.2090")).birth_details()
    assert birth.coordinates == "28.6139,77.209"


def test_yearly_language_defaults_to_english():
    assert YearlyRequest(**BIRTH).language == "en"


def test_explanation_requires_data():
    with pytest.raises(ValidationError):
        ExplanationRequest(language="hi").validated_data()
    assert ExplanationRequest(data={"sign": "Leo"}).validated_data() == {"sign": "Leo"}


def test_access_token_timestamp_is_utc_aware():
    token = AccessToken(value="tok")
    assert token.obtained_at.utcoffset().total_seconds() == 0
