"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default.
"""

from __future__ import annotations

import importlib.util
import os
from unittest.mock import patch

import pytest

import onsweb.api.deps as deps_mod


def _load_fresh_deps():
    """Execute onsweb.api.deps from source under a throwaway module name.

    The real module stays untouched in ``sys.modules`` so dependency
    overrides registered by other tests keep pointing at the live functions.
    """
    spec = importlib.util.spec_from_file_location("_deps_probe", deps_mod.__file__)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestJWTSecretValidation:
    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                _load_fresh_deps()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                _load_fresh_deps()

    def test_rejects_known_weak_default(self):
        with patch.dict(os.environ, {"JWT_SECRET": "your-secret-key"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                _load_fresh_deps()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                _load_fresh_deps()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            os.environ.pop("JWT_REFRESH_SECRET", None)
            module = _load_fresh_deps()
        assert module.JWT_SECRET == good_secret
        assert module.JWT_REFRESH_SECRET == good_secret

    def test_weak_refresh_secret_is_rejected_when_set(self):
        with patch.dict(os.environ, {"JWT_SECRET": "a" * 64, "JWT_REFRESH_SECRET": "short"}):
            with pytest.raises(RuntimeError, match="JWT_REFRESH_SECRET is too short"):
                _load_fresh_deps()
