"""Per-workflow semantic version tags, change analysis and release branches."""

from __future__ import annotations

import json
import logging
import os
import re
from collections import Counter
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

from .config import Environment, FlowPromoteConfig
from .diffing import compare_workflows, tag_names
from .errors import GitError, PreconditionError
from .fsutils import read_json, utc_now
from .gitops import GitRepository
from .models import Difference, is_sidecar, workflow_files
from .naming import NameCodec, git_safe_name

logger = logging.getLogger(__name__)

FIRST_VERSION = "v1.0.0"
PROD_BRANCH = "prod"
CHANGELOG_FILE = "workflow_changes.md"
RELEASE_INFO_FILE = "RELEASE_INFO.md"

_LEADING_DIGITS = re.compile(r"^(\d+)")


def version_key(version: str) -> Tuple[int, ...]:
    """Numeric sort key of ``v1.2.3`` style versions; unparsable segments count as 0."""
    parts = []
    for segment in version.lstrip("vV").split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group(1)) if match else 0)
    return tuple(parts)


def _padded(key: Tuple[int, ...], width: int) -> Tuple[int, ...]:
    return key + (0,) * (width - len(key))


def max_version(versions: List[str]) -> Optional[str]:
    if not versions:
        return None
    width = max(len(version_key(v)) for v in versions)
    return max(versions, key=lambda v: _padded(version_key(v), width))


def suggest_next_version(current: Optional[str]) -> str:
    """``None`` becomes ``v1.0.0``; otherwise bump the patch component."""
    if current is None:
        return FIRST_VERSION
    major, minor, patch = _padded(version_key(current), 3)[:3]
    return f"v{major}.{minor}.{patch + 1}"


class ChangeAnalysis(BaseModel):
    base_name: str
    version: str
    release_date: datetime = Field(default_factory=utc_now)
    is_new: bool
    changes: List[Difference] = Field(default_factory=list)
    main_workflow: dict[str, Any] = Field(default_factory=dict)


class VersionInfo(BaseModel):
    base_name: str
    current_version: Optional[str]
    suggested_version: str


class ReleaseCoordinator:
    """Drive git tags and branches for individually versioned workflows."""

    def __init__(
        self,
        config: FlowPromoteConfig,
        git: Optional[GitRepository] = None,
        codec: Optional[NameCodec] = None,
        prod_branch: str = PROD_BRANCH,
    ) -> None:
        self._config = config
        self._git = git or GitRepository()
        self._codec = codec or NameCodec(config.environments)
        self._prod_branch = prod_branch
        self._workflows_dir = config.paths.workflows_dir

    def current_version(self, base_name: str) -> Optional[str]:
        safe = git_safe_name(base_name)
        prefix = f"{safe}-"
        tags = self._git.list_tags(f"{prefix}*")
        versions = [t[len(prefix):] for t in tags if t.startswith(prefix)]
        current = max_version(versions)
        if current is None:
            logger.info(f"No previous releases found for {base_name} (searched for: {prefix}*)")
        return current

    def suggest_next_version(self, base_name: str) -> str:
        return suggest_next_version(self.current_version(base_name))

    def versions_summary(self) -> List[VersionInfo]:
        rows = []
        for managed in self._config.managed_workflows:
            current = self.current_version(managed.base_name)
            rows.append(
                VersionInfo(
                    base_name=managed.base_name,
                    current_version=current,
                    suggested_version=suggest_next_version(current),
                )
            )
        return rows

    # ------------------------------------------------------------------
    def _workflow_file(self, base_name: str) -> str:
        return self._codec.file_name(self._codec.display_name(base_name, Environment.DEV))

    def analyze_changes(self, base_name: str, version: str) -> ChangeAnalysis:
        """Diff the production branch copy of a workflow against the working tree."""
        file_name = self._workflow_file(base_name)
        local_path = self._git.cwd / self._workflows_dir / file_name
        if not local_path.is_file():
            raise PreconditionError(f"Workflow file not found: {local_path}")
        main_workflow = read_json(local_path)

        git_path = f"{self._repo_relative_dir()}/{file_name}"
        prod_source = self._git.show_file(self._prod_branch, git_path)
        if prod_source is None:
            logger.info(f"{base_name} has no copy on {self._prod_branch}; treating as new")
            return ChangeAnalysis(
                base_name=base_name, version=version, is_new=True, main_workflow=main_workflow
            )

        try:
            prod_workflow = json.loads(prod_source)
        except json.JSONDecodeError as exc:
            raise PreconditionError(
                f"{git_path} on {self._prod_branch} is not valid JSON: {exc}"
            ) from exc
        # Names legitimately differ by environment suffix between the branches.
        prod_workflow = {**prod_workflow, "name": main_workflow.get("name")}
        return ChangeAnalysis(
            base_name=base_name,
            version=version,
            is_new=False,
            changes=compare_workflows(prod_workflow, main_workflow, file_name),
            main_workflow=main_workflow,
        )

    @staticmethod
    def render_workflow_details(workflow: dict[str, Any]) -> str:
        nodes = [n for n in workflow.get("nodes") or [] if isinstance(n, dict)]
        lines = [
            f"**Node Count:** {len(nodes)} nodes",
            f"**Active Status:** {'Active' if workflow.get('active') else 'Inactive'}",
            "",
        ]
        if nodes:
            lines.append("**Node Types:**")
            counts = Counter(str(n.get("type")) for n in nodes)
            lines.extend(f"- {t} ({counts[t]})" for t in sorted(counts))
            lines.append("")
        lines.append("**Tags:**")
        tags = tag_names(workflow)
        if tags:
            lines.extend(f"- {t}" for t in tags)
        else:
            lines.append("- No tags")
        lines.append("")
        return "\n".join(lines) + "\n"

    def render_changelog(self, analysis: ChangeAnalysis) -> str:
        date = analysis.release_date.strftime("%a, %d %b %Y %H:%M:%S GMT")
        if analysis.is_new:
            out = (
                "## New Workflow Release\n\n"
                f"**Workflow:** {analysis.base_name}\n"
                f"**Version:** {analysis.version}\n"
                f"**Release Date:** {date}\n"
                "**Type:** New workflow (first production release)\n\n"
            )
            if analysis.main_workflow:
                out += self.render_workflow_details(analysis.main_workflow)
            return out

        out = (
            "## Workflow Changes\n\n"
            f"**Workflow:** {analysis.base_name}\n"
            f"**Version:** {analysis.version}\n"
            f"**Release Date:** {date}\n\n"
        )
        if analysis.changes:
            out += "### Changes in this release:\n\n"
            for change in analysis.changes:
                out += f"**{change.description}:**\n"
                details = change.details
                if isinstance(details, dict) and "from" in details:
                    out += f"- From: {json.dumps(details['from'])}\n"
                    out += f"- To: {json.dumps(details['to'])}\n"
                elif isinstance(details, dict):
                    for key, values in details.items():
                        if values:
                            out += f"- {key.capitalize()}: {', '.join(values)}\n"
                out += "\n"
        else:
            out += "### No structural changes detected\n\n"
            out += (
                "This release may include internal workflow logic changes "
                "that are not visible in the structural comparison.\n\n"
            )
        if analysis.main_workflow:
            out += "### Current Workflow Details:\n\n"
            out += self.render_workflow_details(analysis.main_workflow)
        return out

    def save_changelog(self, analysis: ChangeAnalysis, path: Optional[Path] = None) -> Path:
        path = path or Path(CHANGELOG_FILE)
        path.write_text(self.render_changelog(analysis), encoding="utf-8")
        logger.info(f"Saved changelog to: {path}")
        return path

    # ------------------------------------------------------------------
    def _ensure_identity(self) -> None:
        self._git.ensure_identity("flowpromote", "flowpromote@users.noreply.github.com")

    def create_release_tag(self, base_name: str, version: str) -> str:
        tag = f"{git_safe_name(base_name)}-{version}"
        self._ensure_identity()
        logger.info(f"Creating release tag: {tag}")
        self._git.create_annotated_tag(tag, f"Release {version} for workflow {base_name}")
        self._git.push_ref(tag)
        return tag

    def create_release_branch(self, base_name: str, version: str) -> str:
        branch = f"release-candidate/{git_safe_name(base_name)}-{version}"
        self._ensure_identity()
        logger.info(f"Creating release candidate branch: {branch}")
        self._git.create_branch(branch)

        info = (
            "## Release Information\n\n"
            f"**Workflow:** {base_name}\n"
            f"**Version:** {version}\n"
            f"**Created:** {utc_now().isoformat()}\n"
            f"**Created by:** {os.getenv('GITHUB_ACTOR', 'unknown')}\n"
            f"**Branch:** {branch}\n\n"
            "This release candidate is ready for review and production deployment.\n"
            "Merge the associated pull request to deploy to production.\n"
        )
        (self._git.cwd / RELEASE_INFO_FILE).write_text(info, encoding="utf-8")
        self._git.add(RELEASE_INFO_FILE)
        self._git.commit(f"chore: create release candidate {version} for {base_name}")
        self._git.push_ref(branch, set_upstream=True)
        return branch

    def _repo_relative_dir(self) -> str:
        directory = self._workflows_dir
        if directory.is_absolute():
            directory = directory.relative_to(self._git.cwd)
        return directory.as_posix().rstrip("/")

    # ------------------------------------------------------------------
    def _base_name_of(self, path: Path) -> str:
        try:
            data = read_json(path)
        except (OSError, ValueError):
            data = None
        if isinstance(data, dict) and isinstance(data.get("name"), str):
            return self._codec.base_name(data["name"])
        return path.stem.replace("_", " ").title()

    def detect_changed_workflows(self, before: str = "HEAD~1", after: str = "HEAD") -> List[str]:
        """Base names of workflow files changed between two refs."""
        prefix = self._repo_relative_dir() + "/"
        try:
            changed = [
                self._git.cwd / name
                for name in self._git.diff_file_names(before, after)
                if name.startswith(prefix)
                and name.endswith(".json")
                and not is_sidecar(PurePosixPath(name).name)
            ]
        except GitError as exc:
            logger.warning(f"git diff failed ({exc}); using every exported workflow")
            changed = workflow_files(self._git.cwd / self._workflows_dir)

        base_names: List[str] = []
        for path in changed:
            base_name = self._base_name_of(path)
            if base_name not in base_names:
                base_names.append(base_name)
        if not base_names:
            raise PreconditionError("No changed workflows detected")
        logger.info(f"Detected changed workflows: {', '.join(base_names)}")
        return base_names
