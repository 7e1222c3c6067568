#!/usr/bin/env python3
"""
Smoke check against a running BD Lead Approvals server.

Usage: python smoke_check.py [base_url]
"""

import json
import requests
import time
import sys

SAMPLE_PROSPECT = {
    "club_name": "Smoke Check Elite Soccer Academy",
    "sport": "soccer",
    "location": "California, USA",
    "website": "https://www.smokecheckelite.com",
    "estimated_athletes": 450,
    "age_groups": ["Youth", "High School", "College Prep"],
    "competition_level": "National",
    "facilities": 3,
    "founded_year": 2008,
    "contact_info": {"email": "info@smokecheckelite.com", "phone": "(555) 010-0000"},
    "key_personnel": [{"name": "Sarah Davis", "role": "Director"}],
    "source": "smoke_check"
}


def check_health(base_url):
    """Check the health endpoint."""
    try:
        response = requests.get(f"{base_url}/health", timeout=10)
        if response.status_code == 200:
            print(f"✅ Health check passed: {response.json()}")
            return True
        print(f"❌ Health check failed: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Health check error: {e}")
        return False


def check_prospect_alert(base_url):
    """Post a qualified prospect; returns its approval id."""
    try:
        response = requests.post(
            f"{base_url}/webhook",
            json={"type": "prospect_alert", "automation": "Smoke Check", "status": "completed",
                  "details": SAMPLE_PROSPECT},
            timeout=30
        )
        data = response.json()
        if response.status_code == 200 and data.get("approvalId"):
            print(f"✅ Prospect alert passed: score {data.get('score')}, approval {data['approvalId']}")
            return data["approvalId"]
        print(f"❌ Prospect alert failed: {response.status_code} {response.text}")
        return None
    except requests.exceptions.RequestException as e:
        print(f"❌ Prospect alert error: {e}")
        return None


def click(base_url, action_id, approval_id, user_id="USMOKE", name="smoke-check"):
    payload = {
        "type": "block_actions",
        "user": {"id": user_id, "name": name},
        "actions": [{"action_id": action_id, "value": approval_id}]
    }
    return requests.post(f"{base_url}/interactivity", data={"payload": json.dumps(payload)}, timeout=30)


def check_approve_twice(base_url, approval_id):
    """Approve the same lead twice; the second click must be a no-op."""
    try:
        first = click(base_url, "create_hubspot_deal", approval_id)
        if first.status_code != 200:
            print(f"❌ Approve click failed: {first.status_code}")
            return False

        # Give the background deal creation a moment
        time.sleep(2)

        second = click(base_url, "create_hubspot_deal", approval_id)
        text = second.json().get("text", "")
        if "already approved" in text:
            print("✅ Duplicate approval test passed - idempotency working")
            return True
        print(f"❌ Duplicate approval not properly handled: {text}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Approval test error: {e}")
        return False


def check_lead_details(base_url, approval_id):
    try:
        response = requests.get(f"{base_url}/lead-details/{approval_id}", timeout=10)
        if response.status_code == 200 and SAMPLE_PROSPECT["club_name"] in response.text:
            print("✅ Lead details page passed")
            return True
        print(f"❌ Lead details page failed: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Lead details error: {e}")
        return False


def check_dashboard(base_url):
    try:
        response = requests.get(f"{base_url}/api/dashboard-data", timeout=10)
        if response.status_code == 200:
            print(f"✅ Dashboard data passed: {response.json()}")
            return True
        print(f"❌ Dashboard data failed: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Dashboard data error: {e}")
        return False


def main():
    """Run all checks."""
    print("🚀 Checking BD Lead Approvals")
    print("=" * 50)

    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    passed = 0
    total = 5

    print("\n🧪 Running Health Check...")
    passed += check_health(base_url)

    print("\n🧪 Running Prospect Alert...")
    approval_id = check_prospect_alert(base_url)
    if approval_id:
        passed += 1
        print("\n🧪 Running Lead Details...")
        passed += check_lead_details(base_url, approval_id)
        print("\n🧪 Running Duplicate Approval (Idempotency)...")
        passed += check_approve_twice(base_url, approval_id)

    print("\n🧪 Running Dashboard Data...")
    passed += check_dashboard(base_url)

    print("\n" + "=" * 50)
    print(f"📊 Results: {passed}/{total} checks passed")

    if passed == total:
        print("🎉 All checks passed! Application is working correctly.")
        return 0
    print("⚠️  Some checks failed. Check the application logs for details.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
