# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the Admin Duty Bot HTTP surface.
Cron trigger, LINE webhook, schedule console, scheduled tasks and system endpoints.
"""

import base64
import hashlib
import hmac
import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app, fire_due_tasks
from dutybot.core.config import settings
from dutybot.core.dependencies import get_console_service, get_task_service
from dutybot.models.domain import PRESET_GROUPS
from dutybot.repositories.state_repository import StateRepository
from dutybot.services.console_service import REMEDIATION_HINT, ConsoleService
from dutybot.services.line_client import LineDispatchClient
from dutybot.services.llm_client import GeminiClient
from dutybot.services.task_service import TaskService
from dutybot.services.webhook_service import FALLBACK_REPLY

client = TestClient(app)

ADMIN_GROUP = PRESET_GROUPS[0].group_id
TEST_GROUP = PRESET_GROUPS[1].group_id


# ============================================
# Fixtures
# ============================================
@pytest.fixture(autouse=True)
def fresh_console():
    """Give every test its own in-memory console and task store."""
    repo = StateRepository()
    console = ConsoleService(repo)
    tasks = TaskService(repo, console)
    app.dependency_overrides[get_console_service] = lambda: console
    app.dependency_overrides[get_task_service] = lambda: tasks
    yield console
    app.dependency_overrides.clear()


@pytest.fixture
def line_credentials():
    with patch.object(settings, "CHANNEL_ACCESS_TOKEN", "test-token"), \
            patch.object(settings, "CHANNEL_SECRET", "test-secret"), \
            patch.object(settings, "CRON_SECRET", "cron-secret"), \
            patch.object(settings, "LINE_GROUP_ID", ADMIN_GROUP):
        yield


def _line_response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.headers = {"x-line-request-id": "req-1"}
    resp.json.return_value = body or {}
    resp.text = json.dumps(body or {})
    return resp


def _mock_httpx(mock_client_class, *responses):
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    if len(responses) == 1:
        mock_client.post.return_value = responses[0]
    else:
        mock_client.post.side_effect = list(responses)
    mock_client_class.return_value = mock_client
    return mock_client


def _sign(body: bytes, secret: str = "test-secret") -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


# ============================================
# Health & Metrics
# ============================================
class TestHealth:
    def test_health_returns_ok(self):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == settings.SERVICE_NAME
        assert "timestamp" in data

    def test_readiness_reports_credentials(self):
        with patch.object(settings, "CHANNEL_ACCESS_TOKEN", ""):
            data = client.get("/health/ready").json()
        assert data["status"] == "ready"
        assert data["line_configured"] is False
        assert data["roster_size"] >= 1


class TestRequestID:
    def test_request_id_propagated(self):
        response = client.get("/health", headers={"X-Request-ID": "test-req-12345"})
        assert response.headers["X-Request-ID"] == "test-req-12345"

    def test_auto_generated_request_id(self):
        response = client.get("/health")
        assert len(response.headers.get("X-Request-ID", "")) > 0


class TestMetrics:
    def test_metrics_returns_200(self):
        assert client.get("/metrics").status_code == 200

    def test_metrics_contains_business_counters(self):
        text = client.get("/metrics").text
        assert "dutybot_cron_runs_total" in text
        assert "dutybot_dispatches_total" in text

    def test_metrics_count_requests(self):
        client.get("/api/v1/console")
        assert "dutybot_requests_total" in client.get("/metrics").text


# ============================================
# Cron trigger
# ============================================
class TestCronAuth:
    def test_missing_bearer_is_rejected(self, line_credentials):
        response = client.get("/api/cron")
        assert response.status_code == 401
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Unauthorized (Invalid Cron Secret)"

    def test_wrong_bearer_is_rejected(self, line_credentials):
        response = client.get("/api/cron", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @patch("dutybot.services.line_client.httpx.Client")
    def test_auth_failure_never_reaches_line(self, mock_client_class, line_credentials):
        client.get("/api/cron")
        mock_client_class.assert_not_called()

    @patch("dutybot.services.line_client.httpx.Client")
    def test_valid_bearer_sends_to_default_group(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get(
            "/api/cron",
            params={"date": "2025-12-08"},
            headers={"Authorization": "Bearer cron-secret"},
        )
        assert response.status_code == 200
        assert response.json()["sentTo"] == [ADMIN_GROUP]
        body = mock_client.post.call_args.kwargs["json"]
        assert body["to"] == ADMIN_GROUP

    @patch("dutybot.services.line_client.httpx.Client")
    def test_manual_skips_bearer(self, mock_client_class, line_credentials):
        _mock_httpx(mock_client_class, _line_response())
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-08"}
        )
        assert response.status_code == 200


class TestCronConfig:
    @patch("dutybot.services.line_client.httpx.Client")
    def test_missing_credentials_fail_before_network(self, mock_client_class):
        with patch.object(settings, "CHANNEL_ACCESS_TOKEN", ""), \
                patch.object(settings, "CHANNEL_SECRET", ""), \
                patch.object(settings, "CRON_SECRET", ""):
            response = client.get("/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP})
        assert response.status_code == 500
        assert response.json()["error"] == "ConfigError"
        mock_client_class.assert_not_called()

    @patch("dutybot.services.line_client.httpx.Client")
    def test_manual_without_group_is_config_error(self, mock_client_class, line_credentials):
        response = client.get("/api/cron", params={"manual": "true"})
        assert response.status_code == 500
        assert "groupId" in response.json()["message"]
        mock_client_class.assert_not_called()


class TestCronWeekly:
    @patch("dutybot.services.line_client.httpx.Client")
    def test_anchor_week_announces_anchor_person(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get(
            "/api/cron",
            params={"manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-10"},
        )
        data = response.json()
        assert data["success"] is True
        assert data["duty"] == "陳怡妗"
        assert data["weekStart"] == "2025-12-08"
        assert data["type"] == "weekly"
        assert data["message"] == "輪值公告 (本週: 陳怡妗, 偏移: 0) 已發送至 1 個群組"
        message = mock_client.post.call_args.kwargs["json"]["messages"][0]
        assert message["type"] == "flex"
        assert "陳怡妗" in message["altText"]

    @patch("dutybot.services.line_client.httpx.Client")
    def test_push_uses_bearer_token(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        client.get("/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP})
        call = mock_client.post.call_args
        assert call.args[0].endswith("/v2/bot/message/push")
        assert call.kwargs["headers"]["Authorization"] == "Bearer test-token"

    @patch("dutybot.services.line_client.httpx.Client")
    def test_shift_and_staff_list(self, mock_client_class, line_credentials):
        _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-15",
            "shift": "-1", "staffList": "林唯農,宋憲昌,江開承,吳怡慧,胡蔚杰,陳頤恩,陳怡妗,陳薏雯,游智諺,陳美杏",
        })
        assert response.json()["duty"] == "陳怡妗"

    @patch("dutybot.services.line_client.httpx.Client")
    def test_person_override(self, mock_client_class, line_credentials):
        _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-08", "person": "代理人",
        })
        data = response.json()
        assert data["duty"] == "代理人"
        assert "手動指定" in data["message"]

    @patch("dutybot.services.line_client.httpx.Client")
    def test_skip_week_turns_weekly_into_suspension(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": ADMIN_GROUP, "date": "2026-02-18", "person": "代理人",
        })
        data = response.json()
        assert data["success"] is True
        assert data["duty"] is None
        assert "自動轉暫停" in data["message"]
        alt = mock_client.post.call_args.kwargs["json"]["messages"][0]["altText"]
        assert alt.startswith("⛔ 會議暫停公告")

    def test_invalid_shift_is_400(self, line_credentials):
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "shift": "two"}
        )
        assert response.status_code == 400

    def test_invalid_date_is_400(self, line_credentials):
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "date": "not-a-date"}
        )
        assert response.status_code == 400

    def test_unknown_type_is_400(self, line_credentials):
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "type": "bogus"}
        )
        assert response.status_code == 400


class TestCronSuspendAndGeneral:
    @patch("dutybot.services.line_client.httpx.Client")
    def test_manual_suspension_with_reason(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": ADMIN_GROUP, "type": "suspend",
            "date": "2025-12-08", "reason": "颱風假",
        })
        data = response.json()
        assert data["message"] == "暫停公告 (事由: 颱風假) 已發送至 1 個群組"
        alt = mock_client.post.call_args.kwargs["json"]["messages"][0]["altText"]
        assert alt == "⛔ 會議暫停公告：颱風假"

    @patch("dutybot.services.line_client.httpx.Client")
    def test_general_announcement(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": ADMIN_GROUP, "type": "general",
            "content": "明日停水\n請提早儲水",
        })
        assert response.json()["message"] == "一般公告 已發送至 1 個群組"
        alt = mock_client.post.call_args.kwargs["json"]["messages"][0]["altText"]
        assert alt == "📝 一般公告：明日停水"

    def test_general_without_content_is_400(self, line_credentials):
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "type": "general"}
        )
        assert response.status_code == 400


class TestCronMultiGroup:
    @patch("dutybot.services.line_client.httpx.Client")
    def test_partial_failure_still_succeeds(self, mock_client_class, line_credentials):
        _mock_httpx(
            mock_client_class,
            _line_response(),
            _line_response(400, {"message": "The bot is not a member of the group"}),
        )
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": f"{ADMIN_GROUP},{TEST_GROUP}", "date": "2025-12-08",
        })
        data = response.json()
        assert response.status_code == 200
        assert data["sentTo"] == [ADMIN_GROUP]
        assert data["errors"] == [f"[{TEST_GROUP[:6]}...] 機器人未入群"]

    @patch("dutybot.services.line_client.httpx.Client")
    def test_all_groups_failing_is_500(self, mock_client_class, line_credentials):
        _mock_httpx(mock_client_class, _line_response(400, {"message": "Invalid to"}))
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-08"}
        )
        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "DispatchError"
        assert "ID無效" in data["message"]

    @patch("dutybot.services.line_client.httpx.Client")
    def test_network_error_is_dispatch_error(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        mock_client.post.side_effect = httpx.ConnectError("connection refused")
        response = client.get(
            "/api/cron", params={"manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-08"}
        )
        assert response.status_code == 500
        assert response.json()["error"] == "DispatchError"

    @patch("dutybot.services.line_client.httpx.Client")
    def test_default_placeholder_is_skipped(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        response = client.get("/api/cron", params={
            "manual": "true", "groupId": f"default,{ADMIN_GROUP}", "date": "2025-12-08",
        })
        assert response.json()["sentTo"] == [ADMIN_GROUP]
        assert mock_client.post.call_count == 1

    @patch("dutybot.services.line_client.httpx.Client")
    def test_triggering_twice_sends_twice(self, mock_client_class, line_credentials):
        mock_client = _mock_httpx(mock_client_class, _line_response())
        params = {"manual": "true", "groupId": ADMIN_GROUP, "date": "2025-12-08"}
        client.get("/api/cron", params=params)
        client.get("/api/cron", params=params)
        assert mock_client.post.call_count == 2


# ============================================
# LINE webhook
# ============================================
class TestWebhook:
    def test_bad_signature_is_401(self, line_credentials):
        body = json.dumps({"events": []}).encode("utf-8")
        response = client.post(
            "/api/webhook", content=body, headers={"x-line-signature": "forged"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid Signature"}

    def test_missing_signature_is_401(self, line_credentials):
        response = client.post("/api/webhook", content=b"{}")
        assert response.status_code == 401

    def test_verification_ping_with_no_events(self, line_credentials):
        body = json.dumps({"events": []}).encode("utf-8")
        response = client.post(
            "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "handled": 0}

    def test_text_message_is_answered(self, line_credentials):
        body = json.dumps({"events": [{
            "type": "message",
            "replyToken": "reply-1",
            "message": {"type": "text", "text": "採購金額十萬元要怎麼辦理？"},
        }]}).encode("utf-8")
        with patch.object(GeminiClient, "generate", return_value="報告，依採購法第49條辦理。"), \
                patch.object(LineDispatchClient, "reply_text") as mock_reply:
            response = client.post(
                "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
            )
        assert response.json() == {"status": "ok", "handled": 1}
        mock_reply.assert_called_once_with("reply-1", "報告，依採購法第49條辦理。")

    def test_gemini_failure_replies_with_apology(self, line_credentials):
        body = json.dumps({"events": [{
            "type": "message",
            "replyToken": "reply-2",
            "message": {"type": "text", "text": "你好"},
        }]}).encode("utf-8")
        with patch.object(GeminiClient, "generate", side_effect=RuntimeError("quota")), \
                patch.object(LineDispatchClient, "reply_text") as mock_reply:
            client.post("/api/webhook", content=body, headers={"x-line-signature": _sign(body)})
        mock_reply.assert_called_once_with("reply-2", FALLBACK_REPLY)

    def test_non_text_events_are_ignored(self, line_credentials):
        body = json.dumps({"events": [
            {"type": "follow", "replyToken": "r"},
            {"type": "message", "replyToken": "r", "message": {"type": "sticker"}},
        ]}).encode("utf-8")
        with patch.object(LineDispatchClient, "reply_text") as mock_reply:
            response = client.post(
                "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
            )
        assert response.json()["handled"] == 0
        mock_reply.assert_not_called()

    def test_non_object_body_is_400(self, line_credentials):
        body = b"[1, 2]"
        response = client.post(
            "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
        )
        assert response.status_code == 400
        assert "JSON object" in response.json()["error"]

    def test_events_not_a_list_is_400(self, line_credentials):
        body = json.dumps({"events": {"type": "message"}}).encode("utf-8")
        response = client.post(
            "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
        )
        assert response.status_code == 400

    def test_malformed_events_are_skipped(self, line_credentials):
        body = json.dumps({"events": [
            "x",
            {"type": "message", "replyToken": "r", "message": "hi"},
        ]}).encode("utf-8")
        with patch.object(LineDispatchClient, "reply_text") as mock_reply:
            response = client.post(
                "/api/webhook", content=body, headers={"x-line-signature": _sign(body)}
            )
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "handled": 0}
        mock_reply.assert_not_called()


# ============================================
# Schedule console
# ============================================
class TestConsolePreview:
    def test_snapshot_has_settings_and_preview(self):
        data = client.get("/api/v1/console").json()
        assert data["settings"]["calibration_offset"] == 0
        assert data["selected_group_ids"] == [ADMIN_GROUP]
        assert "preview" in data

    def test_preview_for_date(self):
        response = client.patch(
            "/api/v1/console/preview", json={"preview_at": "2025-12-10T09:00:00+08:00"}
        )
        assert response.status_code == 200
        assert response.json()["person"] == "陳怡妗"

    def test_preview_force_suspend(self):
        data = client.patch("/api/v1/console/preview", json={
            "preview_at": "2025-12-10T09:00:00+08:00", "force_suspend": True, "reason": "停電",
        }).json()
        assert data["state"] == "manually_suspended"
        assert data["reason"] == "停電"

    def test_preview_skip_week(self):
        data = client.patch(
            "/api/v1/console/preview", json={"preview_at": "2026-02-16T09:00:00+08:00"}
        ).json()
        assert data["state"] == "system_suspended"

    def test_preview_matches_cron_for_same_inputs(self, line_credentials):
        client.post("/api/v1/console/offset", json={"step": 1})
        preview = client.patch(
            "/api/v1/console/preview", json={"preview_at": "2026-01-12T09:00:00+08:00"}
        ).json()
        with patch("dutybot.services.line_client.httpx.Client") as mock_client_class:
            _mock_httpx(mock_client_class, _line_response())
            cron = client.get("/api/cron", params={
                "manual": "true", "groupId": ADMIN_GROUP,
                "date": "2026-01-12T09:00:00+08:00", "shift": "1",
            }).json()
        assert preview["person"] == cron["duty"] == "江開承"


class TestConsoleSettings:
    def test_offset_steps_and_reset(self):
        assert client.post("/api/v1/console/offset", json={"step": 1}).json() == {"calibration_offset": 1}
        assert client.post("/api/v1/console/offset", json={"step": 1}).json() == {"calibration_offset": 2}
        assert client.delete("/api/v1/console/offset").json() == {"calibration_offset": 0}

    def test_offset_step_must_be_one(self):
        assert client.post("/api/v1/console/offset", json={"step": 3}).status_code == 422

    def test_staff_list_replace_and_reset(self):
        response = client.put("/api/v1/console/staff", json={"staff_list": ["甲", " 乙 ", ""]})
        assert response.json()["staff_list"] == ["甲", "乙"]
        reset = client.delete("/api/v1/console/staff").json()
        assert reset["staff_list"] == list(settings.DEFAULT_STAFF_LIST)

    def test_blank_staff_list_rejected(self):
        assert client.put("/api/v1/console/staff", json={"staff_list": ["  "]}).status_code == 400

    def test_schedule(self):
        response = client.put("/api/v1/console/schedule", json={"weekday": 0, "time": "08:30"})
        assert response.json() == {"weekday": 0, "time": "08:30"}

    def test_schedule_bad_time(self):
        assert client.put(
            "/api/v1/console/schedule", json={"weekday": 0, "time": "25:00"}
        ).status_code == 422

    def test_connection_local(self):
        data = client.put("/api/v1/console/connection", json={"mode": "local"}).json()
        assert data["connection_mode"] == "local"
        assert data["endpoint"] == settings.LOCAL_API_URL.rstrip("/")

    def test_connection_bad_url(self):
        response = client.put(
            "/api/v1/console/connection", json={"mode": "remote", "remote_url": "ftp://x"}
        )
        assert response.status_code == 400

    def test_settings_persist_in_store(self, fresh_console):
        client.post("/api/v1/console/offset", json={"step": -1})
        reloaded = ConsoleService(fresh_console._repo)
        assert reloaded.settings.calibration_offset == -1


class TestConsoleGroups:
    def test_presets_listed(self):
        data = client.get("/api/v1/console/groups").json()
        ids = [g["id"] for g in data["groups"]]
        assert ids[:2] == ["preset_admin", "preset_test"]

    def test_add_and_remove_custom_group(self):
        group_id = "C" + "a" * 32
        created = client.post(
            "/api/v1/console/groups", json={"name": "總務組", "group_id": group_id}
        )
        assert created.status_code == 201
        key = created.json()["id"]
        assert key.startswith("custom_")
        assert client.delete(f"/api/v1/console/groups/{key}").status_code == 204
        assert client.delete(f"/api/v1/console/groups/{key}").status_code == 404

    def test_malformed_group_id_rejected(self):
        response = client.post(
            "/api/v1/console/groups", json={"name": "錯誤", "group_id": "U1234"}
        )
        assert response.status_code == 422

    def test_duplicate_group_id_rejected(self):
        response = client.post(
            "/api/v1/console/groups", json={"name": "重複", "group_id": ADMIN_GROUP}
        )
        assert response.status_code == 400

    def test_preset_cannot_be_removed(self):
        assert client.delete("/api/v1/console/groups/preset_admin").status_code == 400

    def test_select_groups(self):
        response = client.put(
            "/api/v1/console/groups/selection", json={"group_ids": [ADMIN_GROUP, TEST_GROUP]}
        )
        assert response.json()["selected_group_ids"] == [ADMIN_GROUP, TEST_GROUP]

    def test_select_unknown_group(self):
        response = client.put(
            "/api/v1/console/groups/selection", json={"group_ids": ["C" + "0" * 32]}
        )
        assert response.status_code == 400


class TestConsoleSend:
    def test_unconfirmed_send_is_cancelled(self, fresh_console):
        with patch.object(fresh_console, "call_cron") as mock_call:
            data = client.post("/api/v1/console/send", json={"confirmed": False}).json()
        assert data["success"] is False
        mock_call.assert_not_called()

    def test_successful_send_logs_steps(self, fresh_console):
        with patch.object(
            fresh_console, "call_cron",
            return_value={"success": True, "message": "輪值公告 (本週: 陳怡妗, 偏移: 0) 已發送至 1 個群組"},
        ) as mock_call:
            data = client.post("/api/v1/console/send", json={"confirmed": True}).json()
        assert data["success"] is True
        params = mock_call.call_args.args[0]
        assert params["manual"] == "true"
        assert params["groupId"] == ADMIN_GROUP
        assert data["logs"][-1]["success"] is True
        assert len(data["logs"]) >= 5

    def test_network_failure_logs_hint(self, fresh_console):
        with patch.object(fresh_console, "call_cron", side_effect=httpx.ConnectError("refused")):
            data = client.post("/api/v1/console/send", json={"confirmed": True}).json()
        assert data["success"] is False
        assert data["logs"][-1]["msg"] == REMEDIATION_HINT
        assert data["logs"][-1]["success"] is False

    def test_rejected_send_logs_message(self, fresh_console):
        with patch.object(
            fresh_console, "call_cron",
            return_value={"success": False, "message": "Unauthorized (Invalid Cron Secret)"},
        ):
            data = client.post("/api/v1/console/send", json={"confirmed": True}).json()
        assert data["message"] == "發送失敗：Unauthorized (Invalid Cron Secret)"
        logs = client.get("/api/v1/console/logs").json()["logs"]
        assert logs[-1]["msg"] == REMEDIATION_HINT

    def test_no_selected_group(self, fresh_console):
        fresh_console.selected_group_ids = []
        with patch.object(fresh_console, "call_cron") as mock_call:
            data = client.post("/api/v1/console/send", json={"confirmed": True}).json()
        assert data["success"] is False
        mock_call.assert_not_called()


class TestConsolePage:
    def test_page_renders(self):
        response = client.get("/console")
        assert response.status_code == 200
        assert "行政科排程控制台" in response.text


# ============================================
# Scheduled tasks
# ============================================
class TestTasks:
    def _task(self, **overrides):
        payload = {
            "type": "general",
            "target_date": "2026-01-05",
            "target_time": "09:00",
            "info": "年終餐會報名",
            "target_group_ids": [ADMIN_GROUP],
            "target_group_names": ["行政科 (AdminHome)"],
        }
        payload.update(overrides)
        return payload

    def test_create_and_list(self):
        created = client.post("/api/v1/tasks", json=self._task())
        assert created.status_code == 201
        tasks = client.get("/api/v1/tasks").json()
        assert [t["id"] for t in tasks] == [created.json()["id"]]

    def test_weekly_task_fills_in_duty_person(self):
        created = client.post(
            "/api/v1/tasks", json=self._task(type="weekly", info="", target_date="2026-01-12")
        ).json()
        assert created["info"] == "宋憲昌"

    def test_general_task_needs_content(self):
        assert client.post("/api/v1/tasks", json=self._task(info="")).status_code == 400

    def test_delete(self):
        task_id = client.post("/api/v1/tasks", json=self._task()).json()["id"]
        assert client.delete(f"/api/v1/tasks/{task_id}").status_code == 204
        assert client.delete(f"/api/v1/tasks/{task_id}").status_code == 404

    def test_run_due_fires_overdue_task(self, fresh_console):
        client.post("/api/v1/tasks", json=self._task())
        with patch.object(
            fresh_console, "call_cron", return_value={"success": True, "message": "ok"}
        ) as mock_call:
            data = client.post("/api/v1/tasks/run-due").json()
        assert data["fired"] == 1
        assert mock_call.call_args.args[0]["content"] == "年終餐會報名"
        assert client.get("/api/v1/tasks").json() == []


# ============================================
# Background scheduler
# ============================================
class TestScheduler:
    def test_disabled_by_default(self):
        with patch.object(settings, "TASK_POLL_SECONDS", 0), TestClient(app):
            assert app.state.scheduler is None

    def test_lifespan_starts_and_stops_scheduler(self):
        with patch.object(settings, "TASK_POLL_SECONDS", 3600), TestClient(app):
            scheduler = app.state.scheduler
            assert scheduler.running
            job = scheduler.get_job("fire_due_tasks")
            assert job.trigger.interval == timedelta(seconds=3600)
        assert not scheduler.running

    def test_job_logs_failures_and_keeps_running(self):
        service = MagicMock()
        service.run_due.side_effect = [OSError("disk full"), [{"id": "t1", "success": True}]]
        with patch("main.get_task_service", return_value=service):
            fire_due_tasks()
            fire_due_tasks()
        assert service.run_due.call_count == 2
