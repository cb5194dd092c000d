from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from rpg_engine.content.schema import (
    CharacterDoc,
    ChoiceDoc,
    EnemyDoc,
    GameDoc,
    ItemDoc,
    SceneDoc,
    SkillDoc,
    StatsDoc,
    TriggerActionDoc,
    TriggerDoc,
)
from rpg_engine.core.commands import TriggerAction
from rpg_engine.core.models import (
    BattleTrigger,
    CharacterDef,
    Choice,
    EnemyDef,
    GameDefinition,
    Item,
    Scene,
    Skill,
    StatsConfig,
)

logger = logging.getLogger(__name__)

Source = Union[Mapping[str, Any], str, Path]
D = TypeVar("D", bound=BaseModel)

_trigger_action_adapter: TypeAdapter[Any] = TypeAdapter(TriggerActionDoc)


class GameDefinitionError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid game definition: " + "; ".join(self.errors))


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def load_game_definition(source: Source) -> GameDefinition:
    """
    게임 정의 JSON(camelCase) -> GameDefinition.
    - source: 이미 읽은 mapping, 또는 JSON 파일 경로(str/Path)
    - 스키마 검증 실패 시 GameDefinitionError (중첩 항목까지 문제 목록 포함)
    """
    doc = _validate(GameDoc, _read(source))
    game = doc.to_model()
    logger.info(
        "Loaded game %s (%d enemies, %d skills, %d items, %d scenes)",
        game.id, len(game.enemies), len(game.skills), len(game.items), len(game.scenes),
    )
    return game


def validate_game_definition(raw: Any) -> ValidationResult:
    """엔진이 읽는 구조만 확인한다 (UI 테마 등 모르는 키는 무시)."""
    try:
        GameDoc.model_validate(raw)
    except ValidationError as e:
        return ValidationResult(False, format_errors(e))
    return ValidationResult(True)


def format_errors(error: ValidationError) -> List[str]:
    """pydantic 오류 -> "enemies.0.id: Field required" 형식"""
    out: List[str] = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err["loc"])
        out.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return out


# ----------------- sections -----------------

def parse_stats_config(raw: Mapping[str, Any]) -> StatsConfig:
    return _validate(StatsDoc, raw).to_model()


def parse_character(raw: Mapping[str, Any]) -> CharacterDef:
    return _validate(CharacterDoc, raw).to_model()


def parse_enemy(raw: Mapping[str, Any]) -> EnemyDef:
    return _validate(EnemyDoc, raw).to_model()


def parse_skill(raw: Mapping[str, Any]) -> Skill:
    return _validate(SkillDoc, raw).to_model()


def parse_item(raw: Mapping[str, Any]) -> Item:
    return _validate(ItemDoc, raw).to_model()


def parse_scene(raw: Mapping[str, Any]) -> Scene:
    return _validate(SceneDoc, raw).to_model()


def parse_choice(raw: Mapping[str, Any]) -> Choice:
    return _validate(ChoiceDoc, raw).to_model()


def parse_trigger(raw: Mapping[str, Any]) -> BattleTrigger:
    return _validate(TriggerDoc, raw).to_model()


def parse_trigger_action(raw: Mapping[str, Any]) -> TriggerAction:
    try:
        doc = _trigger_action_adapter.validate_python(raw)
    except ValidationError as e:
        raise GameDefinitionError(format_errors(e)) from e
    return doc.to_model()


# ----------------- internal -----------------

def _read(source: Source) -> Any:
    if isinstance(source, Mapping):
        return dict(source)
    path = Path(source)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info("Read game definition from %s", path)
    return data


def _validate(model: Type[D], raw: Any) -> D:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise GameDefinitionError(format_errors(e)) from e
