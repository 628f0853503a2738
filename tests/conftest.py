"""
Shared test configuration and fixtures for the OmniConvert tests.
"""

import asyncio
from typing import Callable, List, Optional, Tuple, Union

import pytest
from fastapi.testclient import TestClient

from app import create_app
from omniconvert.config import RenderConfig, TargetFormat
from omniconvert.content import parse_fragment
from omniconvert.extract.base import ContentExtractor
from omniconvert.models import SourceDocument
from omniconvert.orchestrator import ConversionSession
from omniconvert.render import LayoutEngine, RenderBridge
from omniconvert.utils.temp_file_manager import TempFileManager


SAMPLE_FRAGMENT = "<h1>Title</h1><p>Line one<br/>Line two</p>"


class FakeExtractor(ContentExtractor):
    """
    In-process stand-in for the reconstruction service.

    ``fragment`` is returned as-is, or called with the document when it is a
    callable. Set ``error`` to make every call fail and ``gate`` (an
    asyncio.Event) to hold calls until the test releases them.
    """

    name = "fake"

    def __init__(self, fragment: Union[str, Callable[[SourceDocument], str]] = SAMPLE_FRAGMENT):
        self.fragment = fragment
        self.error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple[str, TargetFormat]] = []
        self.closed = False

    async def reconstruct(self, document: SourceDocument, target_format: TargetFormat) -> str:
        self.calls.append((document.name, target_format))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if callable(self.fragment):
            return self.fragment(document)
        return self.fragment

    async def aclose(self) -> None:
        self.closed = True


async def _wait_for_calls(extractor: FakeExtractor, count: int = 1):
    """Yield to the event loop until ``count`` extractor calls are in flight."""
    for _ in range(1000):
        if len(extractor.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError("extractor was not called")


# ===== FIXTURES =====

@pytest.fixture
def wait_for_calls():
    return _wait_for_calls


@pytest.fixture
def render_config() -> RenderConfig:
    """Default typography without the settle delay."""
    return RenderConfig(settle_delay=0.0, poll_interval=0.0, settle_timeout=2.0)


@pytest.fixture
def layout_engine(render_config) -> LayoutEngine:
    return LayoutEngine(render_config)


@pytest.fixture
def sample_blocks():
    return parse_fragment(SAMPLE_FRAGMENT)


@pytest.fixture
def temp_manager(tmp_path):
    manager = TempFileManager(base_dir=str(tmp_path), service="results")
    yield manager
    manager.cleanup_all()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def session(fake_extractor, render_config, temp_manager) -> ConversionSession:
    conversion_session = ConversionSession(
        fake_extractor,
        bridge=RenderBridge(render_config),
        temp_manager=temp_manager,
    )
    yield conversion_session
    conversion_session.close()


@pytest.fixture
def client(fake_extractor, render_config, tmp_path):
    """FastAPI test client running the app lifespan with the fake extractor."""
    app = create_app(extractor=fake_extractor, render_config=render_config, temp_dir=str(tmp_path))
    with TestClient(app) as test_client:
        yield test_client
