"""Tests for agent and controller health snapshots."""

from src.models import AdditionalInfoAgent, AdditionalInfoController


class TestAdditionalInfoAgent:

    def test_all_metric_lines_printed_with_defaults(self):
        content = AdditionalInfoAgent(node="agent-1").content_to_analyze()
        assert content == (
            "Node: agent-1\n"
            "Session Count: 0\n"
            "Active Thread Count: 0\n"
            "Thread Count: 0\n"
            "System Load Average: 0.0\n"
            "System CPU Load: 0.0\n"
            "Available Processors: 0\n"
            "Host: N/A\n"
            "OS: N/A\n"
            "Java Version: N/A\n"
            "JVM Version: N/A\n"
            "PID: N/A\n"
            "Server Info: N/A\n"
            "Context Path: N/A\n"
            "Start Date: N/A\n"
        )

    def test_memory_and_threads_sections(self):
        record = AdditionalInfoAgent(
            node="agent-1",
            host="build-01",
            memory={"heapUsed": "512MB", "heapMax": "2GB"},
            threads={
                "totalThreads": 40,
                "deadlockedThreads": 1,
                "deadlockedThreadData": [{
                    "id": 12, "name": "worker-3", "state": "BLOCKED",
                    "stackTrace": ["at Foo.bar(Foo.java:10)"],
                }],
            },
        )
        content = record.content_to_analyze()
        assert "Host: build-01\n" in content
        assert content.endswith(
            "Memory:\n"
            "- heapUsed: 512MB\n"
            "- heapMax: 2GB\n"
            "Threads:\n"
            "- Total Threads: 40\n"
            "- Deadlocked Threads: 1\n"
            "Deadlocked Thread Data:\n"
            "  - ID: 12\n"
            "    Name: worker-3\n"
            "    State: BLOCKED\n"
            "    Stack Trace:\n"
            "      - at Foo.bar(Foo.java:10)\n"
        )

    def test_wire_aliases(self):
        record = AdditionalInfoAgent(sessionCount=3, systemLoadAverage=1.5, javaVersion="21")
        content = record.content_to_analyze()
        assert "Session Count: 3\n" in content
        assert "System Load Average: 1.5\n" in content
        assert "Java Version: 21\n" in content

    def test_error_status_short_circuits(self):
        record = AdditionalInfoAgent(
            status="error", message="JMX unreachable",
            stacktrace=["java.io.IOException", "at Jmx.connect"], node="agent-1",
        )
        assert record.content_to_analyze() == (
            "Error: JMX unreachable\n"
            "Stacktrace:\n"
            "- java.io.IOException\n"
            "- at Jmx.connect\n"
        )

    def test_error_status_without_message(self):
        assert AdditionalInfoAgent(status="error").content_to_analyze() == "Error: N/A\n"


class TestAdditionalInfoController:

    def test_only_reported_metrics_printed(self):
        record = AdditionalInfoController(
            usedMemory="1GB", maxMemory="4GB", threadsCount=120, freeDiskSpaceInJenkinsDirMb=2048,
        )
        assert record.content_to_analyze() == (
            "Used Memory: 1GB\n"
            "Max Memory: 4GB\n"
            "Threads Count: 120\n"
            "Free Disk Space in Jenkins Dir (MB): 2048\n"
        )

    def test_nothing_reported(self):
        assert AdditionalInfoController().content_to_analyze() == "No content available"

    def test_error_status(self):
        record = AdditionalInfoController(status="error", message="disk probe failed")
        assert record.content_to_analyze() == "Error: disk probe failed\n"

    def test_materialize_returns_self(self):
        record = AdditionalInfoController(usedMemory="1GB")
        assert record.materialize() is record
