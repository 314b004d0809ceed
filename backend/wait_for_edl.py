"""
Helper script to start EDL generation for a project and wait for it to finish
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, str(Path(__file__).parent))

from shotline.client import EdlJobClient, EdlClientError, EdlJobTimeout
from shotline.config import get_settings

def print_progress(status: dict):
    progress = status.get("progress", {})
    print(f"  {status.get('status'):<10} {progress.get('percentage', 0):>3}%  step: {status.get('currentStep')}")
    for step in status.get("steps", []):
        print(f"    - {step['agent_name']:<20} {step['status']}")

def main(project_id: str, user_intent: str, script_path: str = None) -> bool:
    settings = get_settings()
    base_url = os.getenv("SHOTLINE_URL", "http://localhost:8000")
    user_id = os.getenv("SHOTLINE_USER_ID")
    if not user_id:
        print("❌ Set SHOTLINE_USER_ID to the id of the project owner")
        return False

    script_content = Path(script_path).read_text() if script_path else None

    client = EdlJobClient(base_url, user_id, poll_interval=settings.POLL_INTERVAL_SECONDS)
    try:
        submitted = client.submit(project_id, user_intent, script_content)
        print(f"Job {submitted['jobId']}: {submitted['message']}")
        final = client.wait_for_completion(
            project_id,
            submitted["jobId"],
            max_wait=settings.POLL_TIMEOUT_SECONDS,
            on_progress=print_progress
        )
    except EdlClientError as e:
        print(f"❌ {e}")
        return False
    except EdlJobTimeout as e:
        print(f"⏳ {e}. The job keeps running; poll again later.")
        return False

    if final["status"] == "failed":
        error = final.get("error", {})
        print(f"❌ EDL generation failed at {error.get('step')}: {error.get('message')}")
        return False

    results = final.get("results", {})
    print(f"✅ EDL ready: {results.get('totalChunks')} shots, {results.get('finalDuration')}s, "
          f"script coverage {results.get('scriptCoverage')}%")
    return True

if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python wait_for_edl.py <project_id> <user_intent> [script_file]")
        sys.exit(1)

    success = main(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None)
    sys.exit(0 if success else 1)
