"""系统提示词模板加载工具。

模板按语言(locale) 存放在 prompts/<locale>/templates/<name>.md，
客户端在“系统提示词”面板里选择模板后，文本会写入会话的 system_prompt。
"""

from pathlib import Path
from typing import List


PROMPTS_DIR = Path(__file__).resolve().parent

# 面板中展示的顺序
TEMPLATE_NAMES = ["python", "translator", "analyst", "writer", "coder", "teacher"]


def _templates_dir(locale: str) -> Path:
    return PROMPTS_DIR / locale / "templates"


def list_templates(locale: str = "zh") -> List[str]:
    """返回该语言下可用的模板名，已知模板按固定顺序排在前面。"""

    found = {p.stem for p in _templates_dir(locale).glob("*.md")}
    ordered = [name for name in TEMPLATE_NAMES if name in found]
    return ordered + sorted(found - set(ordered))


def load_template(name: str, locale: str = "zh") -> str:
    """根据模板名加载系统提示词文本。

    未知模板抛 KeyError，调用方决定是否忽略。
    """

    fname = _templates_dir(locale) / f"{name}.md"
    if not fname.is_file():
        raise KeyError(f"Unknown template: {name!r}")
    return fname.read_text(encoding="utf-8").strip()
