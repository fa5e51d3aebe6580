"""Minimal native plugin speaking the line-delimited JSON protocol.

Used by the process transport tests. Prints the init ready frame, then
answers one request per line until stdin closes.

Flags:
    --no-handshake       do not print the init frame
    --silent             never print the init frame but keep running
    --exit-immediately N exit with code N before doing anything
    --orphan-pipe        leave a child holding stdout/stderr open, then exit 0

Actions:
    ping     -> {"pong": true}
    echo     -> params
    fail     -> success false with params.message
    notify   -> unsolicited event, then {"notified": true}
    garbage  -> one malformed line, then {"after_garbage": true}
    stderr   -> a line on stderr, then {"logged": true}
    unicode  -> response written in two flushes split inside a character
    slow     -> sleep params.delay seconds, then {"slept": delay}
    crash    -> exit with params.code without answering
    shutdown -> {"shutdown": "acknowledged"}, then exit 0
"""

import json
import subprocess
import sys
import time


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def respond(request_id, data=None, error=None):
    if error is not None:
        send({"id": request_id, "success": False, "error": error})
    else:
        send({"id": request_id, "success": True, "data": data})


def handle(message):
    request_id = message.get("id")
    action = message.get("action")
    params = message.get("params") or {}

    if action == "ping":
        respond(request_id, {"pong": True})
    elif action == "echo":
        respond(request_id, params)
    elif action == "fail":
        respond(request_id, error=params.get("message", "failed"))
    elif action == "notify":
        send({"id": "evt-1", "type": "progress", "data": {"percent": 50}})
        respond(request_id, {"notified": True})
    elif action == "garbage":
        sys.stdout.write("{not json\n")
        sys.stdout.flush()
        respond(request_id, {"after_garbage": True})
    elif action == "stderr":
        sys.stderr.write("diagnostic output\n")
        sys.stderr.flush()
        respond(request_id, {"logged": True})
    elif action == "unicode":
        line = json.dumps({"id": request_id, "success": True, "data": {"text": "héllo ☃"}}, ensure_ascii=False)
        encoded = (line + "\n").encode("utf-8")
        split = encoded.index("☃".encode("utf-8")) + 1
        sys.stdout.buffer.write(encoded[:split])
        sys.stdout.buffer.flush()
        time.sleep(0.05)
        sys.stdout.buffer.write(encoded[split:])
        sys.stdout.buffer.flush()
    elif action == "slow":
        delay = float(params.get("delay", 1))
        time.sleep(delay)
        respond(request_id, {"slept": delay})
    elif action == "crash":
        sys.exit(int(params.get("code", 1)))
    elif action == "shutdown":
        respond(request_id, {"shutdown": "acknowledged"})
        sys.exit(0)
    else:
        respond(request_id, error=f"Unknown action: {action}")


def main(argv):
    if "--exit-immediately" in argv:
        sys.exit(int(argv[argv.index("--exit-immediately") + 1]))

    if "--orphan-pipe" in argv:
        subprocess.Popen([sys.executable, "-c", "import time; time.sleep(2)"], stdin=subprocess.DEVNULL)
        sys.exit(0)

    if "--no-handshake" not in argv and "--silent" not in argv:
        send({"id": "init", "success": True, "data": {"status": "ready", "version": "0.0.1"}})

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError:
            respond("unknown", error="Invalid message")
            continue
        handle(message)


if __name__ == "__main__":
    main(sys.argv[1:])
