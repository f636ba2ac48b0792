"""
Shared fakes for chain pipeline tests.

Every external collaborator (generation API, planner LLM, ffmpeg, object
storage, MongoDB, webhooks) is replaced by an in-memory stand-in so the
pipeline can be driven tick by tick without network, GPU or media tools.
"""

import copy
import json
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.models.chain_job import ChainJob
from app.services.chain.concatenator import Concatenator
from app.services.chain.frame_extractor import FrameExtractor
from app.services.chain.media_tool import MediaTool, MediaToolError
from app.services.chain.orchestrator import ChainOrchestrator
from app.services.chain.planner import SegmentPlanner
from app.services.chain.segment_generator import ContinuitySegmentGenerator
from app.services.openai_service import VideoStatus
from app.utils.cleanup_utils import ChainWorkdirCleaner

BASE_PROMPT = "A lighthouse keeper walks along a stormy cliff at dusk, lantern in hand"


# -----------------------------------------------------------------------------
# Planner LLM
# -----------------------------------------------------------------------------

def make_plan_json(count: int, seconds: int = 8) -> str:
    return json.dumps({
        "segments": [
            {
                "title": f"Generation {i}",
                "seconds": seconds,
                "prompt": (
                    f"**Context** shot {i} continues from the previous frame. "
                    f"**Prompt** slow dolly forward on the lighthouse keeper, beat {i}, warm lantern light."
                ),
            }
            for i in range(1, count + 1)
        ]
    })


class FakeLLM:
    """Returns scripted responses in order, repeating the last one"""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, str]] = []

    def complete(self, system_instructions: str, user_prompt: str) -> str:
        self.calls.append({"system": system_instructions, "user": user_prompt})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


# -----------------------------------------------------------------------------
# Video generation API
# -----------------------------------------------------------------------------

def running(progress: int) -> VideoStatus:
    return VideoStatus(state="running", progress=progress)


def completed(seconds: Optional[float] = None) -> VideoStatus:
    return VideoStatus(state="completed", progress=100, seconds=seconds)


def failed(error: str) -> VideoStatus:
    return VideoStatus(state="failed", progress=0, error=error)


class FakeVideoClient:
    """Each submitted video walks through its own scripted status list.

    `scripts` holds one status list per submission; when it runs out the
    default script is used. The last status of a script repeats forever.
    """

    def __init__(self, scripts: Optional[List[List[VideoStatus]]] = None, default_script=None, thumbnail_fails=False):
        self.scripts = list(scripts or [])
        self.default_script = default_script or [running(50), completed()]
        self.thumbnail_fails = thumbnail_fails
        self.created: List[Dict[str, Any]] = []
        self.polls: Dict[str, int] = {}
        self._script_for: Dict[str, List[VideoStatus]] = {}
        self.events: List[str] = []
        self._lock = threading.Lock()

    def create_video(self, prompt, model, size, seconds, input_reference=None) -> str:
        with self._lock:
            return self._create(prompt, model, size, seconds, input_reference)

    def _create(self, prompt, model, size, seconds, input_reference) -> str:
        video_id = f"video_{len(self.created) + 1}"
        self.created.append({
            "id": video_id,
            "prompt": prompt,
            "model": model,
            "size": size,
            "seconds": seconds,
            "input_reference": input_reference,
        })
        self._script_for[video_id] = self.scripts.pop(0) if self.scripts else list(self.default_script)
        self.polls[video_id] = 0
        self.events.append(f"create:{video_id}")
        return video_id

    def get_video_status(self, video_id: str) -> VideoStatus:
        script = self._script_for[video_id]
        index = min(self.polls[video_id], len(script) - 1)
        self.polls[video_id] += 1
        self.events.append(f"poll:{video_id}")
        return script[index]

    def download_video_content(self, video_id: str, variant: str = "video") -> bytes:
        if variant == "thumbnail":
            if self.thumbnail_fails:
                raise RuntimeError("thumbnail not ready")
            return b"thumb-" + video_id.encode()
        return b"mp4-" + video_id.encode()


# -----------------------------------------------------------------------------
# Media tool
# -----------------------------------------------------------------------------

class FakeMediaTool(MediaTool):
    """Writes plausible output files instead of running ffmpeg"""

    def __init__(self, copy_stderr: Optional[str] = None, reencode_fails=False, extract_fails=False):
        self.copy_stderr = copy_stderr
        self.reencode_fails = reencode_fails
        self.extract_fails = extract_fails
        self.extracted: List[str] = []
        self.copy_lists: List[str] = []
        self.reencoded: List[List[str]] = []

    def extract_last_frame(self, video_path: str, output_path: str) -> None:
        if self.extract_fails:
            raise MediaToolError("extract_last_frame", "ffmpeg exited with code 1", 1, "moov atom not found\n")
        self.extracted.append(video_path)
        with open(output_path, "wb") as f:
            f.write(b"jpeg-last-frame-of-" + os.path.basename(video_path).encode())

    def concat_copy(self, list_file: str, output_path: str) -> None:
        with open(list_file, encoding="utf-8") as f:
            self.copy_lists.append(f.read())
        if self.copy_stderr is not None:
            raise MediaToolError("concat_copy", "ffmpeg exited with code 1", 1, self.copy_stderr)
        with open(output_path, "wb") as f:
            f.write(b"concat")

    def concat_reencode(self, video_paths: List[str], output_path: str) -> None:
        self.reencoded.append(list(video_paths))
        if self.reencode_fails:
            raise MediaToolError("concat_reencode", "ffmpeg exited with code 1", 1, "Conversion failed!")
        with open(output_path, "wb") as f:
            f.write(b"reencoded")


# -----------------------------------------------------------------------------
# Storage, webhooks, persistence
# -----------------------------------------------------------------------------

class FakeStorage:
    def __init__(self, thumbnail_fails=False, video_fails=False):
        self.thumbnail_fails = thumbnail_fails
        self.video_fails = video_fails
        self.uploads: List[Dict[str, str]] = []

    def upload_video(self, job_id: str, local_path: str) -> str:
        from app.services.chain.errors import StorageFailed
        if self.video_fails:
            raise StorageFailed(f"chain_{job_id}.mp4", "bucket unavailable")
        self.uploads.append({"kind": "video", "job_id": job_id, "path": local_path})
        return f"https://cdn.test/chains/{job_id}/chain_{job_id}.mp4"

    def upload_thumbnail(self, job_id: str, local_path: str) -> str:
        from app.services.chain.errors import StorageFailed
        if self.thumbnail_fails:
            raise StorageFailed(f"chain_{job_id}_thumb.jpg", "bucket unavailable")
        self.uploads.append({"kind": "thumbnail", "job_id": job_id, "path": local_path})
        return f"https://cdn.test/chains/{job_id}/chain_{job_id}_thumb.jpg"


class FakeWebhook:
    def __init__(self):
        self.events: List[tuple] = []

    async def notify(self, event: str, job: Dict[str, Any]) -> Dict[str, bool]:
        self.events.append((event, job["job_id"], job["status"]))
        return {}


class InMemoryChainRepository:
    """Mimics ChainRepository/BaseRepository on a dict keyed by job_id"""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.status_history: Dict[str, List[str]] = {}
        self.progress_history: Dict[str, List[int]] = {}

    async def create(self, data: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        data = copy.deepcopy(data)
        data.setdefault("created_at", now)
        data["updated_at"] = now
        self.docs[data["job_id"]] = data
        self.status_history[data["job_id"]] = [data["status"]]
        self.progress_history[data["job_id"]] = []
        return data["job_id"]

    async def create_chain_job(self, job: ChainJob) -> str:
        return await self.create(job.to_document())

    async def get_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(job_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def get_job(self, job_id: str) -> Optional[ChainJob]:
        doc = await self.get_by_id(job_id)
        return ChainJob(**doc) if doc else None

    async def update(self, job_id: str, update_data: Dict[str, Any]) -> bool:
        if job_id not in self.docs:
            return False
        update_data = copy.deepcopy(update_data)
        update_data["updated_at"] = datetime.now(timezone.utc)
        if "status" in update_data:
            self.status_history[job_id].append(update_data["status"])
        if "progress" in update_data:
            self.progress_history[job_id].append(update_data["progress"])
        self.docs[job_id].update(update_data)
        return True

    async def delete(self, job_id: str) -> bool:
        return self.docs.pop(job_id, None) is not None

    async def get_by_status(self, status, limit: int = 1000) -> List[Dict[str, Any]]:
        return [copy.deepcopy(d) for d in self.docs.values() if d["status"] == status.value][:limit]

    async def list_jobs(self, page: int = 1, limit: int = 50) -> List[Dict[str, Any]]:
        docs = sorted(self.docs.values(), key=lambda d: d["created_at"], reverse=True)
        return [copy.deepcopy(d) for d in docs[(page - 1) * limit: page * limit]]


class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def fake_resize(image_bytes: bytes, width: int, height: int) -> bytes:
    return b"resized-%dx%d-" % (width, height) + image_bytes


# -----------------------------------------------------------------------------
# Assembled pipeline
# -----------------------------------------------------------------------------

class Pipeline:
    """Orchestrator plus handles on every fake behind it"""

    def __init__(self, tmp_path, llm=None, video_client=None, media_tool=None, storage=None, **overrides):
        self.repository = InMemoryChainRepository()
        self.llm = llm or FakeLLM([make_plan_json(3)])
        self.video_client = video_client or FakeVideoClient()
        self.media_tool = media_tool or FakeMediaTool()
        self.storage = storage or FakeStorage()
        self.webhook = FakeWebhook()
        self.sleep = SleepRecorder()
        self.workdirs = ChainWorkdirCleaner(temp_root=str(tmp_path / "chains"), retention_hours=24)

        frame_extractor = FrameExtractor(self.media_tool)
        settings_overrides = {"max_concurrent": 1, "max_auto_retries": 1, "max_poll_attempts": 10}
        settings_overrides.update(overrides)
        self.orchestrator = ChainOrchestrator(
            repository=self.repository,
            planner=SegmentPlanner(self.llm),
            generator=ContinuitySegmentGenerator(
                self.video_client, frame_extractor, resize_image=fake_resize, sleep=self.sleep
            ),
            concatenator=Concatenator(self.media_tool),
            frame_extractor=frame_extractor,
            storage=self.storage,
            workdirs=self.workdirs,
            webhook_service=self.webhook,
        )
        self.orchestrator.reload_settings(**settings_overrides)

    async def submit(self, total_duration=24, seconds_per_segment=8, model="sora-2-pro", size="1280x720") -> str:
        job = ChainJob.create_new(BASE_PROMPT, total_duration, seconds_per_segment, model, size)
        await self.repository.create_chain_job(job)
        self.orchestrator.add_to_queue(job.job_id)
        return job.job_id

    async def run_until_idle(self, max_ticks: int = 10) -> None:
        for _ in range(max_ticks):
            admitted = await self.orchestrator.tick()
            await self.orchestrator.wait_idle()
            if not admitted and self.orchestrator.get_queue_length() == 0:
                return


@pytest.fixture
def pipeline_factory(tmp_path):
    def build(**kwargs) -> Pipeline:
        return Pipeline(tmp_path, **kwargs)
    return build
