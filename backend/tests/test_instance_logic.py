# backend/tests/test_instance_logic.py
import io

HDR = {"X-API-Key": "test-key"}

CSV = (
    "Id,Section,Page,ItemType,Question,Option,Characteristic,Required,EnableWhen,HasHelper,HelperType,HelperName,HelperValue\n"
    "age,About,P1,age,How old are you?,,patient_age,TRUE,,FALSE,,,\n"
    "sex,About,P1,radio,Sex at birth,Female,patient_is_female,TRUE,,FALSE,,,\n"
    "sex,About,P1,radio,Sex at birth,Male,patient_is_male,TRUE,,FALSE,,,\n"
    "preg,About,P2,radio,Could you be pregnant?,Yes,pregnant,FALSE,(patient_age>=16) AND (patient_is_female=true),TRUE,weblink,Info,https://example.org\n"
    "preg,About,P2,radio,Could you be pregnant?,No,not_pregnant,FALSE,(patient_age>=16) AND (patient_is_female=true),TRUE,weblink,Info,https://example.org\n"
    "other,About,P2,text-field,Anything else?,,,FALSE,(unknown_flag=true),FALSE,,,\n"
)

def _upload_instance(client):
    link = client.post("/admin/questionnaires/upload", data={"name": "Logic"},
                       files={"file": ("q.csv", io.BytesIO(CSV.encode()), "text/csv")},
                       headers=HDR).json()["admin_link_id"]
    return client.post(f"/admin/questionnaires/{link}/instances", json={"trust_name": "Logic Trust"},
                       headers=HDR).json()["trust_link_id"]

def test_enable_when_is_parsed_and_translated(client):
    tlink = _upload_instance(client)
    qs = {q["question_id"]: q for q in client.get(f"/instances/{tlink}").json()["questions"]}

    preg = qs["preg"]
    assert preg["enable_when_parsed"] == {
        "logic": "AND",
        "conditions": [
            {"characteristic": "patient_age", "operator": ">=", "value": "16"},
            {"characteristic": "patient_is_female", "operator": "=", "value": "true"},
        ],
    }
    tr = preg["enable_when_translated"]
    assert tr["summary"] == ("shown when 'How old are you?' >= 16 and "
                             "'Sex at birth' is answered 'Female'")
    assert [c["raw"] for c in tr["conditions"]] == [False, False]
    assert preg["helper_type"] == "weblink"

    other = qs["other"]["enable_when_translated"]
    assert other["conditions"][0]["raw"] is True
    assert other["summary"] == "shown when unknown_flag is answered"

def test_invalid_helper_url_is_rejected(client):
    tlink = _upload_instance(client)
    qs = {q["question_id"]: q for q in client.get(f"/instances/{tlink}").json()["questions"]}
    body = {
        "instance_question_id": qs["preg"]["id"],
        "submitter_name": "Nurse",
        "reason": "Broken link",
        "component_changes": {"help": {"helper_value": {"from": "https://example.org", "to": "not a url"}}},
    }
    r = client.post(f"/instances/{tlink}/suggestions", json=body)
    assert r.status_code == 400
    assert r.json()["detail"] == {"errors": {"help": ["Please enter a valid URL"]}}

    body["component_changes"]["help"]["helper_value"]["to"] = "https://nhs.uk/pregnancy"
    r = client.post(f"/instances/{tlink}/suggestions", json=body)
    assert r.status_code == 200, r.text
    assert r.json()["suggestion_text"] == "Update helper content"
