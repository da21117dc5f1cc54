import json

from conftest import FakeExecStream, frame, summing_program

from coderunner import state


def receive_until_complete(ws) -> list[dict]:
    messages = []
    while True:
        message = json.loads(ws.receive_text())
        messages.append(message)
        if message["type"] == "complete":
            return messages



def test_websocket_run_streams_output(client, fake_runtime):
    fake_runtime.script(FakeExecStream([frame(1, "hi\n")]))

    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"type": "run", "language": "javascript", "code": "console.log('hi')"}))
        messages = receive_until_complete(ws)

    outputs = [m["data"] for m in messages if m["type"] == "output"]
    assert outputs[0] == "[System] Creating isolated container...\n"
    assert "hi\n" in outputs
    assert outputs[-1] == "\n--- End ---\n"
    assert messages[-1] == {"type": "complete"}
    assert fake_runtime.count("remove") == 1


def test_websocket_execute_alias_and_stdin(client, fake_runtime):
    fake_runtime.script(FakeExecStream(on_input=summing_program()))

    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"type": "execute", "language": "python", "sourceCode": "..."}))
        ws.send_text(json.dumps({"type": "stdin", "input": "3"}))
        ws.send_text(json.dumps({"type": "stdin", "inputText": "4"}))
        messages = receive_until_complete(ws)

    assert "7\n" in [m.get("data") for m in messages if m["type"] == "output"]
    assert fake_runtime.streams[0].written == [b"3\n", b"4\n"]


def test_websocket_reports_terminal_error(client, fake_runtime):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"type": "run", "language": "java", "code": "class A {}"}))
        messages = receive_until_complete(ws)

    assert messages == [
        {"type": "error", "data": "Java code must contain a public class"},
        {"type": "complete"},
    ]
    assert fake_runtime.calls == []


def test_websocket_malformed_message(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        first = json.loads(ws.receive_text())
        ws.send_text(json.dumps({"type": "dance"}))
        second = json.loads(ws.receive_text())
        ws.send_text(json.dumps({"type": "run", "language": "python"}))
        third = json.loads(ws.receive_text())

    for message in (first, second, third):
        assert message["type"] == "error"
        assert message["data"].startswith("Error: ")


def test_websocket_rejects_second_run(client, fake_runtime):
    fake_runtime.script(FakeExecStream(on_input=summing_program()))

    with client.websocket_connect("/ws") as ws:
        run = {"type": "run", "language": "python", "code": "..."}
        ws.send_text(json.dumps(run))
        ws.send_text(json.dumps(run))
        rejected = None
        while rejected is None:
            message = json.loads(ws.receive_text())
            if message["type"] == "error":
                rejected = message
        ws.send_text(json.dumps({"type": "stdin", "input": "3"}))
        ws.send_text(json.dumps({"type": "stdin", "input": "4"}))
        messages = receive_until_complete(ws)

    assert rejected["data"] == "Error: A program is already running on this connection"
    assert "7\n" in [m.get("data") for m in messages if m["type"] == "output"]
    assert fake_runtime.count("create") == 1


def test_websocket_without_runtime(client, monkeypatch):
    monkeypatch.setattr(state, "runtime", None)

    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"type": "run", "language": "python", "code": "print(1)"}))
        messages = receive_until_complete(ws)

    assert messages == [
        {"type": "error", "data": "Error: Code execution is unavailable"},
        {"type": "complete"},
    ]


def test_websocket_stdin_without_run_is_ignored(client, fake_runtime):
    fake_runtime.script(FakeExecStream([frame(1, "ok\n")]))

    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"type": "stdin", "input": "early"}))
        ws.send_text(json.dumps({"type": "run", "language": "javascript", "code": "x"}))
        messages = receive_until_complete(ws)

    assert "ok\n" in [m.get("data") for m in messages]
    assert fake_runtime.streams[0].written == []


def test_websocket_binary_frame_is_rejected(client, fake_runtime):
    fake_runtime.script(FakeExecStream([frame(1, "still here\n")]))

    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b"\x00\x01binary")
        rejected = json.loads(ws.receive_text())
        ws.send_text(json.dumps({"type": "run", "language": "javascript", "code": "x"}))
        messages = receive_until_complete(ws)

    assert rejected == {"type": "error", "data": "Error: Only text messages are supported"}
    assert "still here\n" in [m.get("data") for m in messages]
