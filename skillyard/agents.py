from __future__ import annotations

import logging
import shutil
from dataclasses import replace
from pathlib import Path

from .errors import TargetExistsError, UnknownAgentError, UnknownSkillError
from .frontmatter import has_marker
from .hashing import hash_tree
from .models import Agent, SkillInfo
from .symlinks import is_symlink, remove_managed_path


logger = logging.getLogger(__name__)


class AgentRegistry:
    """Per-agent view of skill directories.

    All paths are built from each agent's tilde-expanded `global_dir`.
    """

    def __init__(self, agents: dict[str, Agent]) -> None:
        self.agents = agents

    def agent(self, agent_id: str) -> Agent:
        try:
            return self.agents[agent_id]
        except KeyError:
            raise UnknownAgentError(agent_id=agent_id) from None

    def detect_agents(self) -> dict[str, Agent]:
        """Recompute `detected` for every agent.

        An agent counts as installed when the parent of its skills dir exists,
        so an agent with zero skills is still detected.
        """

        out: dict[str, Agent] = {}
        for aid, a in self.agents.items():
            detected = a.skills_root.parent.is_dir()
            out[aid] = replace(a, detected=detected)
        return out

    def skills_root(self, agent_id: str) -> Path:
        return self.agent(agent_id).skills_root

    def skill_path(self, skill_name: str, agent_id: str) -> Path:
        return self.skills_root(agent_id) / skill_name

    def list_skills(self, agent_id: str) -> list[SkillInfo]:
        root = self.skills_root(agent_id)
        try:
            entries = sorted(root.iterdir(), key=lambda p: p.name.encode("utf-8"))
        except FileNotFoundError:
            return []

        skills: list[SkillInfo] = []
        for d in entries:
            # linked entries point into the central store and are not copies
            if is_symlink(d) or not d.is_dir() or not has_marker(d):
                continue
            skills.append(
                SkillInfo(name=d.name, identity=hash_tree(d), origin_agent=agent_id, path=d)
            )
        return skills

    def has_skill(self, skill_name: str, agent_id: str) -> bool:
        p = self.skill_path(skill_name, agent_id)
        return p.is_dir() and has_marker(p)

    def copy_skill(self, skill_name: str, from_agent: str, to_agent: str) -> Path:
        src = self.skill_path(skill_name, from_agent)
        dst = self.skill_path(skill_name, to_agent)
        if not src.is_dir():
            raise UnknownSkillError(skill_name=skill_name, where=from_agent)
        if is_symlink(dst):
            raise TargetExistsError(path=dst)

        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(src, dst, dirs_exist_ok=True)
        logger.debug("copied %s: %s -> %s", skill_name, from_agent, to_agent)
        return dst

    def delete_skill(self, skill_name: str, agent_id: str) -> None:
        p = self.skill_path(skill_name, agent_id)
        if not p.exists() and not p.is_symlink():
            raise UnknownSkillError(skill_name=skill_name, where=agent_id)
        remove_managed_path(p)
        logger.debug("deleted %s from %s", skill_name, agent_id)
