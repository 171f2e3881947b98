"""
Tests for the ALM API client against a mocked primeapi
"""
import httpx
import pytest

from alm_client import ALMAPIError, ALMClient, to_eds_instance_id
from conftest import mock_client


API = "https://alm.test/primeapi/v2"


def _client(handler, token="svc-token"):
    return ALMClient(api_base=API, access_token=token, client=mock_client(handler))


def test_to_eds_instance_id():
    assert to_eds_instance_id("course:12495374_13216648") == "12495374-13216648"
    assert to_eds_instance_id("12495374-13216648") == "12495374-13216648"


def test_get_json_sends_bearer_and_accept(recorded):
    def handler(request):
        recorded.append(request)
        return httpx.Response(200, json={"data": {"id": "x"}})

    assert _client(handler).get_json(f"{API}/anything") == {"data": {"id": "x"}}
    assert recorded[0].headers["Authorization"] == "Bearer svc-token"
    assert recorded[0].headers["Accept"] == "application/vnd.api+json"


def test_get_json_rejects_missing_token():
    with pytest.raises(ValueError):
        _client(lambda r: httpx.Response(200, json={}), token="").get_json(f"{API}/x")


def test_get_json_raises_on_error_status():
    client = _client(lambda r: httpx.Response(403, text="forbidden"))
    with pytest.raises(ALMAPIError) as exc:
        client.get_json(f"{API}/x")
    assert exc.value.status == 403
    assert exc.value.body == "forbidden"


def test_get_json_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ALMAPIError, match="timeout"):
        _client(handler).get_json(f"{API}/x")


def test_fetch_learning_object_course_first(recorded):
    def handler(request):
        recorded.append(request)
        return httpx.Response(200, json={"data": {"id": "course:5", "type": "learningObject"}})

    doc = _client(handler).fetch_learning_object("5")

    assert doc["data"]["id"] == "course:5"
    assert len(recorded) == 1
    assert recorded[0].url.path == "/primeapi/v2/learningObjects/course:5"
    assert recorded[0].url.params["useCache"] == "true"
    assert recorded[0].url.params["filter.ignoreEnhancedLP"] == "false"
    assert "skills.skillLevel.skill" in recorded[0].url.params["include"]


def test_fetch_learning_object_falls_back_to_program(recorded):
    def handler(request):
        recorded.append(request.url.path)
        if "learningProgram:" in request.url.path:
            return httpx.Response(200, json={"data": {"id": "learningProgram:5", "type": "learningProgram"}})
        return httpx.Response(404, text="not found")

    doc = _client(handler).fetch_learning_object("5")

    assert doc["data"]["type"] == "learningProgram"
    assert recorded == [
        "/primeapi/v2/learningObjects/course:5",
        "/primeapi/v2/learningObjects/learningProgram:5",
    ]


def test_fetch_learning_object_none_when_both_fail():
    assert _client(lambda r: httpx.Response(404)).fetch_learning_object("5") is None


def test_fetch_learning_object_none_on_network_error():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    assert _client(handler).fetch_learning_object("5") is None



def test_fetch_learning_object_none_on_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    assert _client(handler).fetch_learning_object("5") is None


def test_prefixed_id_is_used_verbatim(recorded):
    def handler(request):
        recorded.append(request.url.path)
        return httpx.Response(200, json={"data": {"id": "learningProgram:5", "type": "learningProgram"}})

    doc = _client(handler).fetch_learning_object("learningProgram:5")

    assert doc["data"]["id"] == "learningProgram:5"
    assert recorded == ["/primeapi/v2/learningObjects/learningProgram:5"]

def test_fetch_instances(course_document):
    course_document["included"] = [i for i in course_document["included"] if i["id"] != "course:7235188_9002"]
    client = _client(lambda r: httpx.Response(200, json=course_document))

    instances = client.fetch_instances("7235188")

    assert [i.id for i in instances] == ["7235188-9001", "7235188-9002"]
    assert instances[0].alm_id == "course:7235188_9001"
    assert instances[0].name == "Default Instance"
    assert instances[0].state == "Active"
    assert instances[1].name == "Instance 7235188-9002"
    assert instances[1].state == "Unknown"


def test_fetch_instances_empty_on_failure():
    assert _client(lambda r: httpx.Response(500)).fetch_instances("1") == []


def test_check_enrollment_and_enroll(recorded):
    def handler(request):
        recorded.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"data": {"id": "course:5"}})
        return httpx.Response(200, json={"data": {"relationships": {"enrollment": {"data": {"id": "e1"}}}}})

    client = _client(handler)
    enrolled, doc = client.check_enrollment("course:5", "learner")
    assert enrolled is True
    assert doc is not None
    assert recorded[0].headers["Authorization"] == "oauth learner"
    assert recorded[0].url.params["showLoContentSource"] == "true"

    assert client.enroll("course:5", "learner") == {"data": {"id": "course:5"}}
    assert recorded[1].method == "POST"


def test_check_enrollment_errors_read_as_not_enrolled():
    enrolled, doc = _client(lambda r: httpx.Response(401)).check_enrollment("course:5", "bad")
    assert enrolled is False
    assert doc is None
    assert _client(lambda r: httpx.Response(500)).enroll("course:5", "bad") is None


def test_player_url():
    url = _client(lambda r: httpx.Response(200)).player_url("course:5", "tok")
    assert url == "https://alm.test/app/player?lo_id=course%3A5&access_token=tok"
