"""Tests for the provider adapters: canonical mapping, totality and validation failures."""

import pytest

from conftest import intercom_payload
from insightpulse.adapters import parse, resolve_provider
from insightpulse.errors import UnsupportedProvider, ValidationFailure
from insightpulse.models.feedback import Source


class TestIntercom:
    def test_conversation_maps_to_canonical_fields(self):
        payload = intercom_payload()
        rec = parse(Source.INTERCOM, payload)
        assert rec.source == Source.INTERCOM
        assert rec.source_id == "conv-1"
        assert rec.content == "The app crashes on login"
        assert rec.customer_email == "jane@example.com"
        assert rec.customer_name == "Jane"
        assert rec.customer_id == "u-1"
        assert rec.original_data == payload

    def test_original_data_is_a_copy(self):
        payload = intercom_payload()
        rec = parse(Source.INTERCOM, payload)
        payload["data"]["item"]["id"] = "changed"
        assert rec.original_data["data"]["item"]["id"] == "conv-1"

    def test_non_conversation_event_is_rejected(self):
        payload = {"topic": "user.created", "data": {"item": {"type": "user", "id": "u-1"}}}
        with pytest.raises(ValidationFailure):
            parse(Source.INTERCOM, payload)

    def test_empty_message_body_is_rejected(self):
        with pytest.raises(ValidationFailure) as exc:
            parse(Source.INTERCOM, intercom_payload(body="<p> </p>"))
        assert exc.value.field == "content"

    def test_missing_user_leaves_customer_absent(self):
        payload = intercom_payload()
        del payload["data"]["item"]["user"]
        rec = parse(Source.INTERCOM, payload)
        assert rec.customer_email is None
        assert rec.customer_name is None


    def test_wrong_typed_user_and_message_are_ignored(self):
        payload = intercom_payload()
        payload["data"]["item"]["user"] = "bob"
        rec = parse(Source.INTERCOM, payload)
        assert rec.customer_name is None
        assert rec.content == "The app crashes on login"

        payload = intercom_payload()
        payload["data"]["item"]["conversation_message"] = "hello"
        with pytest.raises(ValidationFailure):
            parse(Source.INTERCOM, payload)


class TestZendesk:
    def _payload(self, **ticket):
        base = {
            "id": 991,
            "subject": "Refund",
            "description": "I was charged twice",
            "requester": {"email": "bob@example.com", "name": "Bob"},
            "requester_id": 55,
        }
        base.update(ticket)
        return {"ticket": base}

    def test_ticket_maps_to_canonical_fields(self):
        rec = parse(Source.ZENDESK, self._payload())
        assert rec.source_id == "991"
        assert rec.content == "I was charged twice"
        assert rec.title == "Refund"
        assert rec.customer_id == "55"
        assert rec.rating is None

    @pytest.mark.parametrize("score,expected", [("good", 5), ("bad", 1), (3, 3), ("offered", None), (9, None)])
    def test_satisfaction_rating(self, score, expected):
        rec = parse(Source.ZENDESK, self._payload(satisfaction_rating={"score": score}))
        assert rec.rating == expected

    @pytest.mark.parametrize("score", ["Infinity", "-inf", "nan", "1e999", 10 ** 400, 4.5])
    def test_non_finite_or_fractional_rating_is_absent(self, score):
        rec = parse(Source.ZENDESK, self._payload(satisfaction_rating={"score": score}))
        assert rec.rating is None

    def test_missing_body_is_rejected(self):
        with pytest.raises(ValidationFailure):
            parse(Source.ZENDESK, self._payload(description=""))

    def test_missing_ticket_is_rejected(self):
        with pytest.raises(ValidationFailure):
            parse(Source.ZENDESK, {"event": "ticket.updated"})


class TestStoreReviews:
    def test_google_play_review(self):
        payload = {"review": {"reviewId": "gp-1", "authorName": "Ann", "comment": "Love it",
                              "starRating": 5, "reviewerLanguage": "en_GB", "appVersionName": "2.1"}}
        rec = parse(Source.GOOGLE_PLAY, payload)
        assert rec.source_id == "gp-1"
        assert rec.rating == 5
        assert rec.language == "en-gb"
        assert rec.metadata["appVersion"] == "2.1"
        assert rec.customer_email is None

    def test_google_play_publisher_api_shape(self):
        payload = {"review": {"reviewId": "gp-2", "authorName": "Ann",
                              "comments": [{"userComment": {"text": "Keeps crashing", "starRating": 1}}]}}
        rec = parse(Source.GOOGLE_PLAY, payload)
        assert rec.content == "Keeps crashing"
        assert rec.rating == 1

    def test_google_play_wrong_typed_user_comment(self):
        payload = {"review": {"reviewId": "gp-3", "comment": "Fine", "comments": [{"userComment": "text"}],
                              "deviceMetadata": "pixel"}}
        rec = parse(Source.GOOGLE_PLAY, payload)
        assert rec.content == "Fine"
        assert "device" not in rec.metadata

    def test_app_store_review(self):
        payload = {"review": {"id": "as-1", "reviewerNickname": "kim", "review": "Too slow",
                              "rating": 2, "title": "Meh", "language": "de"}}
        rec = parse(Source.APP_STORE, payload)
        assert (rec.source_id, rec.rating, rec.title, rec.language) == ("as-1", 2, "Meh", "de")

    def test_invalid_language_falls_back_to_default(self):
        payload = {"review": {"id": "as-2", "review": "ok", "language": "not a language!"}}
        assert parse(Source.APP_STORE, payload).language == "en"


class TestTwitter:
    def test_tweet(self):
        payload = {"tweet": {"id_str": "123", "text": "@acme your app is down",
                             "user": {"id_str": "9", "screen_name": "sam"}, "lang": "en"}}
        rec = parse(Source.TWITTER, payload)
        assert rec.source_id == "123"
        assert rec.customer_id == "9"
        assert rec.title == "Tweet from @sam"

    def test_extended_text_wins(self):
        payload = {"tweet": {"id_str": "124", "text": "short…", "extended_tweet": {"full_text": "the full text"}}}
        assert parse(Source.TWITTER, payload).content == "the full text"


class TestGenericAndManual:
    def test_generic_webhook_keeps_declared_source(self):
        payload = {"source": "typeform", "data": {"id": "t-1", "message": "Nice", "rating": "4"}}
        rec = parse(Source.WEBHOOK, payload)
        assert rec.source == Source.WEBHOOK
        assert rec.source_id == "t-1"
        assert rec.rating == 4
        assert rec.metadata["declaredSource"] == "typeform"

    def test_generic_webhook_without_id_is_not_deduplicated(self):
        rec = parse(Source.WEBHOOK, {"data": {"text": "hello"}})
        assert rec.source_id is None
        assert rec.metadata["declaredSource"] == "unknown"

    @pytest.mark.parametrize("raw,expected", [(42, "42"), (5.0, "5"), (1.2, "1.2"), (float("inf"), None), (True, None)])
    def test_numeric_ids(self, raw, expected):
        rec = parse(Source.WEBHOOK, {"data": {"id": raw, "text": "hello"}})
        assert rec.source_id == expected

    def test_fractional_ids_stay_distinct(self):
        a = parse(Source.WEBHOOK, {"data": {"id": 1.2, "text": "a"}})
        b = parse(Source.WEBHOOK, {"data": {"id": 1.7, "text": "b"}})
        assert a.source_id != b.source_id

    def test_manual_submission(self):
        rec = parse(Source.MANUAL, {"content": "Call notes", "rating": 0, "customerEmail": "not-an-email"})
        assert rec.source == Source.MANUAL
        assert rec.source_id is None
        assert rec.rating is None
        assert rec.customer_email is None


class TestResolveProvider:
    @pytest.mark.parametrize("name,expected", [
        ("intercom", Source.INTERCOM),
        ("google-play", Source.GOOGLE_PLAY),
        ("app-store", Source.APP_STORE),
        ("generic", Source.WEBHOOK),
        ("Zendesk", Source.ZENDESK),
    ])
    def test_aliases(self, name, expected):
        assert resolve_provider(name) == expected

    @pytest.mark.parametrize("name", ["slack", "email", "manual", ""])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedProvider):
            resolve_provider(name)
