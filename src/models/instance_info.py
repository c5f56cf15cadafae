"""Jenkins agent and controller health snapshots.

Two variants, ``additional_info_agent`` and ``additional_info_controller``,
report JVM and host metrics for the node that ran a build. When the
collector itself failed (``status == "error"``) only the error message and
stack trace are rendered.
"""

from typing import Any, Literal

from pydantic import Field

from src.models.typed_log import NO_CONTENT_AVAILABLE, TypedLog, format_value

ERROR_STATUS = "error"


class _InstanceInfo(TypedLog):
    """Fields shared by agent and controller snapshots."""

    host: str | None = None
    os: str | None = None
    system_load_average: float | None = Field(default=None, alias="systemLoadAverage")
    system_cpu_load: float | None = Field(default=None, alias="systemCpuLoad")
    available_processors: int | None = Field(default=None, alias="availableProcessors")
    java_version: str | None = Field(default=None, alias="javaVersion")
    jvm_version: str | None = Field(default=None, alias="jvmVersion")
    pid: str | None = None
    server_info: str | None = Field(default=None, alias="serverInfo")
    context_path: str | None = Field(default=None, alias="contextPath")
    start_date: str | None = Field(default=None, alias="startDate")
    status: str | None = None
    message: str | None = None
    stacktrace: list[str] | None = None

    @property
    def is_error(self) -> bool:
        return self.status == ERROR_STATUS

    def _error_block(self) -> str:
        parts = [f"Error: {self.message if self.message is not None else 'N/A'}\n"]
        if self.stacktrace:
            parts.append("Stacktrace:\n")
            parts.extend(f"- {line}\n" for line in self.stacktrace)
        return "".join(parts)


def _or_na(value: Any) -> str:
    return "N/A" if value is None else format_value(value)


class AdditionalInfoAgent(_InstanceInfo):
    """Health snapshot of the agent node that ran the build.

    Counters default to 0 and load figures to 0.0, so every metric line is
    always printed; missing strings render as N/A.
    """

    type: Literal["additional_info_agent"] = "additional_info_agent"
    node: str | None = None
    session_count: int = Field(default=0, alias="sessionCount")
    active_thread_count: int = Field(default=0, alias="activeThreadCount")
    thread_count: int = Field(default=0, alias="threadCount")
    system_load_average: float = Field(default=0.0, alias="systemLoadAverage")
    system_cpu_load: float = Field(default=0.0, alias="systemCpuLoad")
    available_processors: int = Field(default=0, alias="availableProcessors")
    memory: dict[str, Any] | None = None
    threads: dict[str, Any] | None = None

    def content_to_analyze(self) -> str:
        if self.is_error:
            return self._error_block()

        parts = [
            f"Node: {_or_na(self.node)}\n",
            f"Session Count: {self.session_count}\n",
            f"Active Thread Count: {self.active_thread_count}\n",
            f"Thread Count: {self.thread_count}\n",
            f"System Load Average: {self.system_load_average}\n",
            f"System CPU Load: {self.system_cpu_load}\n",
            f"Available Processors: {self.available_processors}\n",
            f"Host: {_or_na(self.host)}\n",
            f"OS: {_or_na(self.os)}\n",
            f"Java Version: {_or_na(self.java_version)}\n",
            f"JVM Version: {_or_na(self.jvm_version)}\n",
            f"PID: {_or_na(self.pid)}\n",
            f"Server Info: {_or_na(self.server_info)}\n",
            f"Context Path: {_or_na(self.context_path)}\n",
            f"Start Date: {_or_na(self.start_date)}\n",
        ]

        if self.memory is not None:
            parts.append("Memory:\n")
            parts.extend(f"- {key}: {format_value(value)}\n" for key, value in self.memory.items())

        if self.threads is not None:
            parts.append("Threads:\n")
            parts.append(f"- Total Threads: {format_value(self.threads.get('totalThreads', 0))}\n")
            parts.append(
                f"- Deadlocked Threads: {format_value(self.threads.get('deadlockedThreads', 0))}\n"
            )
            deadlocked = self.threads.get("deadlockedThreadData") or []
            if deadlocked:
                parts.append("Deadlocked Thread Data:\n")
                for thread in deadlocked:
                    parts.append(f"  - ID: {format_value(thread.get('id', 'N/A'))}\n")
                    parts.append(f"    Name: {format_value(thread.get('name', 'N/A'))}\n")
                    parts.append(f"    State: {format_value(thread.get('state', 'N/A'))}\n")
                    stack = thread.get("stackTrace") or []
                    if stack:
                        parts.append("    Stack Trace:\n")
                        parts.extend(f"      - {line}\n" for line in stack)

        return "".join(parts)


class AdditionalInfoController(_InstanceInfo):
    """Health snapshot of the Jenkins controller.

    Every metric is optional; lines are printed only for reported values.
    """

    type: Literal["additional_info_controller"] = "additional_info_controller"
    used_memory: str | None = Field(default=None, alias="usedMemory")
    max_memory: str | None = Field(default=None, alias="maxMemory")
    used_perm_gen: str | None = Field(default=None, alias="usedPermGen")
    max_perm_gen: str | None = Field(default=None, alias="maxPermGen")
    used_non_heap: str | None = Field(default=None, alias="usedNonHeap")
    used_physical_memory: str | None = Field(default=None, alias="usedPhysicalMemory")
    used_swap_space: str | None = Field(default=None, alias="usedSwapSpace")
    sessions_count: int | None = Field(default=None, alias="sessionsCount")
    active_http_threads_count: int | None = Field(default=None, alias="activeHttpThreadsCount")
    threads_count: int | None = Field(default=None, alias="threadsCount")
    free_disk_space_in_jenkins_dir_mb: int | None = Field(
        default=None, alias="freeDiskSpaceInJenkinsDirMb"
    )

    def content_to_analyze(self) -> str:
        if self.is_error:
            return self._error_block()

        labelled = [
            ("Used Memory", self.used_memory),
            ("Max Memory", self.max_memory),
            ("Used PermGen", self.used_perm_gen),
            ("Max PermGen", self.max_perm_gen),
            ("Used Non-Heap", self.used_non_heap),
            ("Used Physical Memory", self.used_physical_memory),
            ("Used Swap Space", self.used_swap_space),
            ("Sessions Count", self.sessions_count),
            ("Active HTTP Threads Count", self.active_http_threads_count),
            ("Threads Count", self.threads_count),
            ("System Load Average", self.system_load_average),
            ("System CPU Load", self.system_cpu_load),
            ("Available Processors", self.available_processors),
            ("Host", self.host),
            ("OS", self.os),
            ("Java Version", self.java_version),
            ("JVM Version", self.jvm_version),
            ("PID", self.pid),
            ("Server Info", self.server_info),
            ("Context Path", self.context_path),
            ("Start Date", self.start_date),
            ("Free Disk Space in Jenkins Dir (MB)", self.free_disk_space_in_jenkins_dir_mb),
        ]
        parts = [f"{label}: {value}\n" for label, value in labelled if value is not None]
        return "".join(parts) if parts else NO_CONTENT_AVAILABLE
