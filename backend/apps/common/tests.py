# -*- coding: utf-8 -*-
"""
公共模块单测：
- 统一响应结构与全局异常处理
- 字段校验工具与日志脱敏
- 健康检查接口
"""

from __future__ import annotations

from django.test import SimpleTestCase, TestCase
from rest_framework import serializers
from rest_framework.exceptions import NotAuthenticated, ValidationError as DRFValidationError
from rest_framework.test import APIClient

from apps.common import response
from apps.common.exception_handler import custom_exception_handler
from apps.common.exceptions import (
    ConflictError,
    InvariantViolationError,
    TeamWriteConflictError,
    ValidationError,
    ensure_invariant,
    require,
)
from apps.common.infra.logger import logger_extra
from apps.common.openapi import build_operation_id
from apps.common.schema_utils import api_response_schema, completion_serializer, list_response, team_serializer
from apps.common.utils.validators import (
    forbid_dangerous_html,
    parse_bool,
    parse_int,
    validate_length,
    validate_slug,
)


class ResponseEnvelopeTests(SimpleTestCase):
    def test_success_payload(self):
        resp = response.success({"ok": True})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, {"code": 0, "message": "OK", "data": {"ok": True}})

    def test_fail_carries_data_and_extra(self):
        resp = response.fail(code=47010, message="解锁码不正确", data={"reason": "code_mismatch"}, extra={"a": 1})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["data"]["reason"], "code_mismatch")
        self.assertEqual(resp.data["extra"], {"a": 1})

    def test_accepted_status(self):
        self.assertEqual(response.accepted({"scheduled": True}).status_code, 202)


class ExceptionHandlerTests(SimpleTestCase):
    """全局异常处理：业务错误、DRF 内置异常与未知异常"""

    def test_biz_error_mapped_to_envelope(self):
        resp = custom_exception_handler(ConflictError(message="队伍名称已存在"), {})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], 40900)
        self.assertEqual(resp.data["message"], "队伍名称已存在")

    def test_transient_error_keeps_retry_hint(self):
        resp = custom_exception_handler(TeamWriteConflictError(extra={"team_id": 3, "retryable": True}), {})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.data["code"], 50310)
        self.assertTrue(resp.data["extra"]["retryable"])

    def test_drf_exceptions_mapped(self):
        resp = custom_exception_handler(DRFValidationError({"name": ["必填"]}), {})
        self.assertEqual(resp.data["code"], 40002)
        self.assertEqual(resp.data["message"], "必填")
        resp = custom_exception_handler(NotAuthenticated(), {})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], 40100)

    def test_invariant_violation_returns_500(self):
        resp = custom_exception_handler(InvariantViolationError("积分不一致"), {})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data["code"], 50000)
        self.assertNotIn("积分不一致", resp.data["message"])

    def test_guards(self):
        with self.assertRaises(ConflictError):
            require(False, ConflictError())
        require(True, ConflictError())
        with self.assertRaises(InvariantViolationError):
            ensure_invariant(False, "broken")


class ValidatorTests(SimpleTestCase):
    def test_slug(self):
        validate_slug("two-sum_2")
        with self.assertRaises(ValidationError):
            validate_slug("two sum")

    def test_length(self):
        validate_length("abc", min_length=3, max_length=5)
        with self.assertRaises(ValidationError):
            validate_length("ab", min_length=3, max_length=5)
        with self.assertRaises(ValidationError):
            validate_length("abcdef", max_length=5)

    def test_dangerous_html(self):
        forbid_dangerous_html("**markdown** is fine")
        with self.assertRaises(ValidationError):
            forbid_dangerous_html("<script>alert(1)</script>")

    def test_parse_int_and_bool(self):
        self.assertEqual(parse_int("42"), 42)
        with self.assertRaises(ValidationError):
            parse_int(True)
        with self.assertRaises(ValidationError):
            parse_int("abc")
        self.assertTrue(parse_bool("yes"))
        self.assertFalse(parse_bool("0"))
        with self.assertRaises(ValidationError):
            parse_bool("maybe")


class LoggerExtraTests(SimpleTestCase):
    def test_unlock_code_masked(self):
        extra = logger_extra({"team_id": 1, "unlock_code": "DUOTHAN-AAAAAAAA-0000-AA"})
        self.assertEqual(extra["biz_extra"], {"team_id": 1, "unlock_code": "***"})


class OpenApiTests(SimpleTestCase):
    def test_operation_id_from_path(self):
        self.assertEqual(
            build_operation_id("/api/teams/{team_id}/buildathon/unlock/", "POST"),
            build_operation_id("/api/teams/{team_id}/buildathon/unlock/", "post"),
        )
        self.assertNotEqual(
            build_operation_id("/api/teams/{team_id}/", "GET"),
            build_operation_id("/api/teams/{team_id}/eligibility/", "GET"),
        )

    def test_shared_serializers_are_reusable_classes(self):
        """同名结构重复取用时返回同一个类，可按需 many=True 实例化"""
        self.assertIsInstance(team_serializer(), type)
        self.assertIs(team_serializer(), team_serializer())
        self.assertIsInstance(completion_serializer(many=True), serializers.ListSerializer)
        schema = api_response_schema("ReuseCheck", {"team": team_serializer(), "completion": completion_serializer()})
        self.assertIsInstance(schema, serializers.Serializer)
        self.assertIsInstance(list_response("ReuseCheckList", completion_serializer()), serializers.Serializer)


class OpenApiSchemaEndpointTests(TestCase):
    def test_schema_generated_for_all_routes(self):
        resp = APIClient().get("/api/schema/", {"format": "json"})
        self.assertEqual(resp.status_code, 200)
        paths = resp.json()["paths"]
        self.assertIn("/api/teams/{team_id}/buildathon/unlock/", paths)
        self.assertIn("/api/challenges/", paths)


class HealthCheckTests(TestCase):
    def test_health_endpoint(self):
        resp = APIClient().get("/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"], {"status": "ok"})
