"""
Data Loader Script - Loads question_bank.json into the portal via API.

Reads the question bank file and sends it to the question upload endpoint.

Usage:
    python load_data.py                                  # Uses default URL and file
    python load_data.py http://localhost:8000             # Custom API URL
    python load_data.py http://backend:8000 bank.json     # Custom URL and file
"""

import json
import sys
import os

import httpx


def post_json(url, data):
    with httpx.Client(timeout=30.0) as client:
        resp = client.post(url, json=data)
        resp.raise_for_status()
        return resp.json()


def to_question_payload(item: dict) -> dict:
    """Accept both snake_case and camelCase field names."""
    return {
        "id": item.get("id"),
        "text": item.get("text"),
        "options": item.get("options", []),
        "correct_index": item.get("correct_index", item.get("correctIndex")),
        "explanation": item.get("explanation", ""),
    }


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    upload_url = f"{api_url}/api/questions"

    data_file = sys.argv[2] if len(sys.argv) > 2 else os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "question_bank.json")
    if not os.path.exists(data_file):
        data_file = "question_bank.json"

    if not os.path.exists(data_file):
        print("Error: Could not find question_bank.json")
        sys.exit(1)

    print(f"Loading questions from: {data_file}")
    with open(data_file, 'r') as f:
        raw_questions = json.load(f)

    questions = [to_question_payload(q) for q in raw_questions]

    print(f"Found {len(questions)} questions to upload")
    print(f"Sending to: {upload_url}")
    print()

    try:
        result = post_json(upload_url, {"questions": questions})
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error {e.response.status_code}: {e.response.text}")
        sys.exit(1)

    print("=" * 60)
    print("QUESTION BANK UPLOAD SUMMARY")
    print("=" * 60)
    print(f"  Total Received:  {result.get('total_received', '?')}")
    print(f"  Created:         {result.get('created', '?')}")
    print(f"  Updated:         {result.get('updated', '?')}")
    print(f"  Errors:          {result.get('errors', '?')}")
    print("=" * 60)

    for d in result.get('details', []):
        print(f"  ❌ question {d.get('question_id', '?')}: {d.get('reason', '?')}")

    print()
    print("✅ Question bank loaded.")


if __name__ == "__main__":
    main()
