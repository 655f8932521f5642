import asyncio
import json
import time

from chainway.config import Settings
from chainway.errors import ErrorKind
from chainway.pipeline.controller import handler_builder
from chainway.schemas.event import InvocationContext

from conftest import SIGNUP_SCHEMA, make_request


class Echo:
    def run(self, query):
        return query


def echo(query, ctx):
    return Echo()


class UserNotFound(Exception):
    pass


# --- Success path ---


async def test_success_response(build):
    pipeline = build([echo], query_extraction={"id": "queryStringParameters.id"})
    envelope = await pipeline(make_request(query_parameters={"id": "7"}))
    assert envelope.status_code == 200
    assert json.loads(envelope.body) == {"id": "7"}
    assert envelope.headers["Content-Type"] == "application/json"
    assert envelope.headers["Access-Control-Allow-Origin"] == "*"
    assert envelope.headers["Strict-Transport-Security"].startswith("max-age=")


async def test_empty_chain_succeeds_with_absent_result(build):
    pipeline = build([], query_extraction={"method": "httpMethod"})
    envelope = await pipeline(make_request())
    assert envelope.status_code == 200
    assert envelope.body == "null"


async def test_stages_see_validated_and_reshaped_body(build):
    seen = {}

    class Capture:
        def run(self, query):
            return "ok"

    def capture(query, ctx):
        seen["body"] = json.loads(ctx.request.body)
        seen["query"] = query
        return Capture()

    pipeline = build(
        [capture],
        body_schema={
            "type": "object",
            "properties": {"user": {"type": "object"}, "age": {"type": "integer"}},
            "additionalProperties": False,
        },
        body_extraction={"age": "age", "email": "user.email"},
        query_extraction={"body": "body"},
    )
    request = make_request(
        "POST", body={"user": {"email": "a@b.com"}, "age": "30", "junk": True}
    )
    envelope = await pipeline(request)
    assert envelope.status_code == 200
    assert seen["body"] == {"age": 30, "email": "a@b.com"}
    assert json.loads(seen["query"]["body"]) == {"age": 30, "email": "a@b.com"}


async def test_request_id_reaches_stages(build):
    class RequestId:
        def __init__(self, ctx):
            self.ctx = ctx

        async def run(self, query):
            return {"requestId": self.ctx.request_id}

    pipeline = build([lambda query, ctx: RequestId(ctx)])
    envelope = await pipeline(make_request(), InvocationContext(request_id="abc"))
    assert json.loads(envelope.body) == {"requestId": "abc"}


# --- Validation ---


async def test_valid_signup_passes(build):
    pipeline = build([lambda query, ctx: Echo()], body_schema=SIGNUP_SCHEMA)
    body = {"email": "a@b.com", "name": "Al", "password": "longenough", "extra": "x"}
    envelope = await pipeline(make_request("POST", body=body))
    assert envelope.status_code == 200


async def test_invalid_signup_is_400_with_findings(build):
    ran = []

    def never(query, ctx):
        ran.append(True)
        return Echo()

    pipeline = build([never], body_schema=SIGNUP_SCHEMA)
    envelope = await pipeline(
        make_request("POST", body={"email": "bad", "name": "A"}),
        InvocationContext(request_id="req-400"),
    )
    body = json.loads(envelope.body)
    assert envelope.status_code == 400
    assert body["code"] == 400
    assert body["message"] == "Validation failed"
    assert body["requestId"] == "req-400"
    assert {item["path"]: item["keyword"] for item in body["validationErrors"]} == {
        "email": "format",
        "name": "minLength",
        "password": "required",
    }
    assert ran == []


async def test_get_requests_skip_validation(build):
    pipeline = build([echo], body_schema=SIGNUP_SCHEMA)
    envelope = await pipeline(make_request("GET"))
    assert envelope.status_code == 200


async def test_non_json_post_is_content_type_error(build):
    pipeline = build([echo])
    envelope = await pipeline(
        make_request("POST", body="a=1", headers={"Content-Type": "application/x-www-form-urlencoded"})
    )
    body = json.loads(envelope.body)
    assert envelope.status_code == 500
    assert body["message"] == "Content-Type must be application/json"


async def test_content_type_header_is_case_insensitive(build):
    pipeline = build([echo])
    envelope = await pipeline(
        make_request("PUT", body={}, headers={"Content-Type": "application/json; charset=utf-8"})
    )
    assert envelope.status_code == 200


async def test_malformed_json_body_is_extraction_error(build):
    pipeline = build([echo], body_schema=SIGNUP_SCHEMA, error_mapping={422: [ErrorKind.EXTRACTION]})
    envelope = await pipeline(make_request("POST", body="{oops"))
    assert envelope.status_code == 422


# --- Chain failures ---


async def test_stage_error_maps_through_user_rules(build):
    ran = []

    class Missing:
        async def run(self, query):
            raise UserNotFound("user 7 not found")

    def after(query, ctx):
        ran.append(True)
        return Echo()

    pipeline = build([lambda q, c: Missing(), after], error_mapping={404: [UserNotFound]})
    envelope = await pipeline(make_request())
    body = json.loads(envelope.body)
    assert envelope.status_code == 404
    assert body["message"] == "user 7 not found"
    assert ran == []


async def test_unmapped_stage_error_is_500(build):
    class Broken:
        def run(self, query):
            raise RuntimeError("kaput")

    envelope = await build([lambda q, c: Broken()])(make_request())
    assert envelope.status_code == 500
    assert json.loads(envelope.body)["code"] == 500


# --- Deadline ---


async def test_slow_stage_times_out(build):
    class Sleepy:
        async def run(self, query):
            await asyncio.sleep(1)
            return "late"

    pipeline = build([lambda q, c: Sleepy()], timeout_ms=50)
    started = time.monotonic()
    envelope = await pipeline(make_request())
    assert envelope.status_code == 408
    assert json.loads(envelope.body)["code"] == 408
    assert time.monotonic() - started < 0.5


async def test_deadline_is_shared_by_the_whole_chain(build):
    class Nap:
        async def run(self, query):
            await asyncio.sleep(0.03)
            return query

    # Each stage fits the budget alone, the chain does not.
    pipeline = build([lambda q, c: Nap()] * 4, timeout_ms=80)
    envelope = await pipeline(make_request())
    assert envelope.status_code == 408


async def test_blocking_stage_times_out(build):
    class Blocking:
        def run(self, query):
            time.sleep(0.2)
            return "late"

    envelope = await build([lambda q, c: Blocking()], timeout_ms=50)(make_request())
    assert envelope.status_code == 408



async def test_slow_extraction_expires_deadline_before_chain(build):
    ran = []

    class Recorder:
        def run(self, query):
            ran.append(query)
            return query

    pipeline = build(
        [lambda q, c: Recorder()],
        query_extraction={"slow": lambda source: time.sleep(0.05)},
        timeout_ms=20,
    )
    envelope = await pipeline(make_request())
    assert envelope.status_code == 408
    assert json.loads(envelope.body)["code"] == 408
    assert ran == []

async def test_timeout_setting_comes_from_config():
    pipeline = handler_builder(Settings(_env_file=None, timeout_ms=40))([])
    assert pipeline.timeout_ms == 40


# --- Response size and CORS ---


async def test_oversized_result_is_413():
    build = handler_builder(Settings(_env_file=None, max_response_size=10))

    class Big:
        def run(self, query):
            return {"payload": "x" * 50}

    envelope = await build([lambda q, c: Big()])(make_request())
    assert envelope.status_code == 413
    assert json.loads(envelope.body)["code"] == 413


async def test_disallowed_origin_gets_literal_null():
    build = handler_builder(Settings(_env_file=None, cors_origin_whitelist=["https://ok.com"]))
    pipeline = build([echo])
    blocked = await pipeline(make_request(headers={"Origin": "https://evil.com"}))
    allowed = await pipeline(make_request(headers={"origin": "https://ok.com"}))
    assert blocked.headers["Access-Control-Allow-Origin"] == "null"
    assert allowed.headers["Access-Control-Allow-Origin"] == "https://ok.com"


async def test_error_responses_carry_cors_and_security_headers():
    build = handler_builder(Settings(_env_file=None, cors_origin_whitelist=["https://ok.com"]))
    envelope = await build([echo])(
        make_request("POST", body="x", headers={"origin": "https://ok.com"})
    )
    assert envelope.status_code == 500
    assert envelope.headers["Access-Control-Allow-Origin"] == "https://ok.com"
    assert envelope.headers["X-Content-Type-Options"] == "nosniff"
    assert envelope.headers["Content-Type"] == "application/json"
