"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import io
import os
import types
import uuid

import pytest

from fakes import FakeS3
from zip_aggregator.clients import S3Client
from zip_aggregator.monitor import ResourceMonitor


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables the entry points read.
    """
    original = os.environ.copy()
    os.environ.setdefault("AWS_REGION", "us-east-1")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "zip-aggregator-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    os.environ.setdefault("TRACE_ALLOCATIONS", "false")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def s3_client(fake_s3: FakeS3) -> S3Client:
    """S3Client over the fake, with tiny parts so multipart paths are exercised."""
    return S3Client(s3_client=fake_s3, upload_part_size=256)


@pytest.fixture
def monitor_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def monitor(monitor_output: io.StringIO) -> ResourceMonitor:
    return ResourceMonitor(stream=monitor_output, trace_allocations=False)


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="zip-aggregator",
        memory_limit_in_mb=512,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:eu-west-1:000000000000:function:dummy",
        get_remaining_time_in_millis=lambda: 30000,
    )
