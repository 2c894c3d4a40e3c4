import json
from typing import Any

import yaml

# ----------------------------
# Output formatting
# ----------------------------


def output_result(result: dict[str, Any], fmt: str = "text") -> None:
    """
    Prints the outcome of a diagnostic operation.
    - Text mode prints raw tool output first, then one artifact path per
      line so scripts can pick up the last line
    - Missing artifacts are omitted rather than printed as empty
    """
    result = {k: v for k, v in result.items() if v is not None}

    if fmt == "json":
        print(json.dumps(result, indent=2))
        return

    if fmt == "yaml":
        print(yaml.safe_dump(result, sort_keys=False))
        return

    # ----------------------------
    # Text output
    # ----------------------------
    output = result.get("output")
    if output:
        print(output.rstrip("\n"))

    sessions = result.get("sessions")
    if sessions is not None:
        if not sessions:
            print("No active sessions")
        for s in sessions:
            print(
                f"{s['pod_name']}\t{s['tool']}\t{s['state']}\t"
                f"{s['container_id']}\t{s.get('started_at') or '-'}"
            )

    if "stopped_by" in result:
        print(f"Stopped by {result['stopped_by']}")

    for key in ("artifact", "flamegraph"):
        if key in result:
            print(result[key])
