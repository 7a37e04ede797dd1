"""
Hidden achievements: a trial may unlock an achievement when its condition holds after finishing.

Conditions are small boolean expressions written by content admins, e.g.
    score >= allScoreVal && timeRemaining > timeAllocated / 2
They are parsed with ast and evaluated over a fixed set of names; nothing else is reachable.
"""
import ast
import logging
import operator
import re
from typing import Dict, Optional

from trialcore.errors import DataStoreError

logger = logging.getLogger(__name__)

CONDITION_NAMES = ("score", "timeRemaining", "timeAllocated", "allScoreVal", "attemptCount")

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}
_CMP_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

# Admin-written conditions use JS operators; map them onto Python's.
# Order matters: "!==" before "===", both before bare "!".
_JS_TOKENS = [
    (re.compile(r"!==?"), "!="),
    (re.compile(r"===?"), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
]


class ConditionError(ValueError):
    """Condition uses syntax or names outside the allowed subset."""


def _to_python(expression: str) -> str:
    out = expression
    for pattern, repl in _JS_TOKENS:
        out = pattern.sub(repl, out)
    return out.strip()


def _eval_node(node, names: Dict[str, float]):
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, names)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float, bool)):
        return node.value
    if isinstance(node, ast.Name):
        if node.id in ("True", "False"):
            return node.id == "True"
        if node.id not in names:
            raise ConditionError(f"Unknown name {node.id!r}")
        return names[node.id]
    if isinstance(node, ast.BoolOp):
        values = [_eval_node(v, names) for v in node.values]
        return all(values) if isinstance(node.op, ast.And) else any(values)
    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, names)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval_node(node.left, names), _eval_node(node.right, names))
    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, names)
        for op, comparator in zip(node.ops, node.comparators):
            if type(op) not in _CMP_OPS:
                raise ConditionError(f"Unsupported comparison {type(op).__name__}")
            right = _eval_node(comparator, names)
            if not _CMP_OPS[type(op)](left, right):
                return False
            left = right
        return True
    raise ConditionError(f"Unsupported syntax {type(node).__name__}")


def evaluate_condition(expression: str, **values) -> bool:
    """Evaluate a hidden-achievement condition. Raises ConditionError on anything outside the subset."""
    names = {k: v for k, v in values.items() if k in CONDITION_NAMES}
    try:
        tree = ast.parse(_to_python(expression), mode="eval")
    except SyntaxError as e:
        raise ConditionError(f"Invalid condition {expression!r}: {e}") from e
    try:
        return bool(_eval_node(tree, names))
    except ZeroDivisionError as e:
        raise ConditionError(f"Division by zero in {expression!r}") from e


def check_hidden_achievement(store, trial, user_id: str, awarded_at, **values) -> Optional[Dict]:
    """
    Award the trial's hidden achievement when its condition holds.

    Returns:
        Achievement details {name, description, image} if the user holds it after this call, else None.
        Store or condition failures are logged and treated as "not achieved".
    """
    if not trial.hd_achv_id:
        return None
    try:
        if not store.has_achievement(user_id, trial.hd_achv_id):
            if not trial.hd_condition:
                return None
            try:
                achieved = evaluate_condition(trial.hd_condition, **values)
            except ConditionError as e:
                logger.error(f"Trial {trial.id}: bad hidden achievement condition: {e}")
                return None
            if not achieved:
                return None
            store.award_achievement(user_id, trial.hd_achv_id, awarded_at)
            logger.info(f"User {user_id} unlocked hidden achievement {trial.hd_achv_id}")
        return store.get_achievement(trial.hd_achv_id)
    except DataStoreError as e:
        logger.error(f"Hidden achievement check failed for trial {trial.id}: {e}")
        return None
