# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Exception taxonomy for the installer."""

from __future__ import annotations


class InstallError(RuntimeError):
    """Base class for every installer failure."""


class ConfigurationError(InstallError):
    """Bad names, bad size, missing or broken backend config, invalid override files."""


class IncompatibilityError(InstallError):
    """An existing object conflicts with the intended installation state."""


class ClusterAPIError(InstallError):
    """A cluster, backend or authorization call failed for a reason other than not-found."""


class TeardownError(InstallError):
    """One or more stale artifacts from a previous attempt could not be removed."""


class ReadinessTimeout(InstallError):
    """A readiness predicate did not succeed within the allotted time.

    Attributes:
        elapsed: Seconds spent waiting before giving up.
    """

    def __init__(self, message: str, elapsed: float) -> None:
        super().__init__(message)
        self.elapsed = elapsed
