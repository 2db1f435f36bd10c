"""Diagnosis key verification and upload engine.

Turns a positive-test verification code into a certified, padded submission of
exposure notification keys, and generates cover traffic that makes genuine
submissions indistinguishable from background noise.
"""

from keyupload.controller import UploadController, build_upload_controller
from keyupload.errors import UploadError, classify
from keyupload.models import DiagnosisKey, TestResult, Upload, UserReportUpload

__all__ = [
    "DiagnosisKey",
    "TestResult",
    "Upload",
    "UploadController",
    "UploadError",
    "UserReportUpload",
    "build_upload_controller",
    "classify",
]
