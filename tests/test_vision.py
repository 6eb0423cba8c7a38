import asyncio
import json

import httpx

import main as app_module
from app.api.deps import get_vision_client
from app.services.vision import VisionClient, enrich_report, parse_classification, strip_code_fences


def model_reply(content, status_code=200):
    """A VisionClient whose provider always answers with the given message content."""
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        if status_code != 200:
            return httpx.Response(status_code, json={"error": {"message": "boom"}})
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    client = VisionClient(api_key="sk-test", api_url="https://ai.test/v1/chat/completions",
                          transport=httpx.MockTransport(handler))
    client.requests = requests
    return client


def use_vision(vision):
    app_module.app.dependency_overrides[get_vision_client] = lambda: vision


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_classification_maps_unknown_category_to_other():
    parsed = parse_classification('{"category": "graffiti", "short_description": "Tagged wall", "severity": "HIGH"}')
    assert parsed == {"category": "other", "short_description": "Tagged wall", "severity": "high"}


def test_suggest_fields_success(client):
    vision = model_reply('```json\n{"category": "pothole", "short_description": "Large pothole in the bike lane"}\n```')
    use_vision(vision)
    resp = client.post("/functions/suggest-report-fields", json={"imageData": "data:image/jpeg;base64,AAAA"})
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "category": "pothole",
        "short_description": "Large pothole in the bike lane",
    }
    sent = vision.requests[0]["messages"][0]["content"]
    assert sent[1]["image_url"]["url"] == "data:image/jpeg;base64,AAAA"


def test_suggest_fields_without_image_is_soft_failure(client):
    resp = client.post("/functions/suggest-report-fields", json={})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "imageData is required"}


def test_suggest_fields_without_api_key(client):
    resp = client.post("/functions/suggest-report-fields", json={"imageData": "data:image/png;base64,AAAA"})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "OpenAI API key not configured"}


def test_suggest_fields_upstream_error(client):
    use_vision(model_reply("", status_code=500))
    resp = client.post("/functions/suggest-report-fields", json={"imageData": "data:image/png;base64,AAAA"})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "AI provider error: 500"}


def test_suggest_fields_unparseable_reply_keeps_raw_text(client):
    use_vision(model_reply("I think it is a pothole"))
    body = client.post("/functions/suggest-report-fields", json={"imageData": "x"}).json()
    assert body["success"] is False
    assert body["error"] == "Failed to parse AI response"
    assert body["raw_response"] == "I think it is a pothole"


def test_enrich_fills_type_when_reporter_picked_other(client, fake_db):
    use_vision(model_reply('{"category": "flooding", "severity": "high", "short_description": "Flooded underpass"}'))
    resp = client.post("/functions/enrich-report", json={"reportId": "rep-3"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["type"] == "flooding"

    stored = next(r for r in fake_db.tables["reports"] if r["id"] == "rep-3")
    assert stored["type"] == "flooding"
    assert stored["ai_metadata"] == {"category": "flooding", "severity": "high", "short_description": "Flooded underpass"}


def test_enrich_keeps_specific_type(fake_db):
    vision = model_reply('{"category": "trash", "severity": "low", "short_description": "Bags on the curb"}')
    result = asyncio.run(enrich_report(fake_db, vision, "rep-1"))
    assert result["success"] is True
    assert result["type"] == "pothole"
    stored = next(r for r in fake_db.tables["reports"] if r["id"] == "rep-1")
    assert stored["type"] == "pothole"
    assert stored["ai_metadata"]["category"] == "trash"


def test_enrich_upstream_error_leaves_report_alone(client, fake_db):
    use_vision(model_reply("", status_code=503))
    resp = client.post("/functions/enrich-report", json={"reportId": "rep-3"})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "AI provider error: 503"}
    stored = next(r for r in fake_db.tables["reports"] if r["id"] == "rep-3")
    assert stored["ai_metadata"] is None
    assert ("reports", "update") not in fake_db.calls


def test_enrich_missing_report(client):
    use_vision(model_reply('{"category": "pothole", "short_description": "x"}'))
    assert client.post("/functions/enrich-report", json={"reportId": "nope"}).json() == {
        "success": False,
        "error": "Report not found",
    }
    assert client.post("/functions/enrich-report", json={}).json() == {
        "success": False,
        "error": "reportId is required",
    }


def test_suggest_fields_malformed_body_is_soft_failure(client):
    resp = client.post("/functions/suggest-report-fields", content=b"not json",
                       headers={"Content-Type": "application/json"})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "Invalid request body"}

    resp = client.post("/functions/suggest-report-fields", json={"imageData": ["a", "b"]})
    assert resp.status_code == 200
    assert resp.json()["success"] is False


def test_enrich_malformed_body_is_soft_failure(client, fake_db):
    resp = client.post("/functions/enrich-report", json={"reportId": 5})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "Invalid request body"}

    resp = client.post("/functions/enrich-report", json=["rep-3"])
    assert resp.json() == {"success": False, "error": "Invalid request body"}
    assert ("reports", "select") not in fake_db.calls
