import logging
import os
import random
from typing import Any, Optional

from flask import Flask, jsonify, redirect, render_template, request, session, url_for
from flask.typing import ResponseReturnValue

from game_engine import GameEngine, GameSnapshot, InvalidDirectionError

app = Flask(__name__)

# 默认配置，可被同名环境变量覆盖
app.config.update(
    SECRET_KEY=os.environ.get("SECRET_KEY", "change_this_to_a_random_secret_key"),
    GAME_GRID_SIZE=int(os.environ.get("GAME_GRID_SIZE", "4")),
    GAME_WIN_VALUE=int(os.environ.get("GAME_WIN_VALUE", "2048")),
    GAME_SEED=os.environ.get("GAME_SEED"),
    LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
)

logging.basicConfig(level=app.config["LOG_LEVEL"])
logger = logging.getLogger(__name__)


def make_rng() -> random.Random:
    """
    配置了 GAME_SEED 时，按 (种子, 已走步数) 派生随机数，
    同样的操作序列得到同样的对局。
    """
    seed: Optional[Any] = app.config.get("GAME_SEED")
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{session.get('moves', 0)}")


def start_new_game() -> GameEngine:
    """开始新的一局，并写入 session。"""
    session["moves"] = 0
    engine = GameEngine(
        size=app.config["GAME_GRID_SIZE"],
        win_value=app.config["GAME_WIN_VALUE"],
        rng=make_rng(),
    )
    save_engine(engine)
    logger.info("started %dx%d game", engine.size, engine.size)
    return engine


def save_engine(engine: GameEngine) -> None:
    """保存游戏状态到 session。"""
    session.update(
        {
            "grid": engine.current_grid(),
            "score": engine.current_score(),
            "won": engine.is_won(),
            "over": engine.is_over(),
        }
    )


def get_engine() -> GameEngine:
    """从 session 重建当前对局，没有则新建。"""
    grid = session.get("grid")
    if grid is None or len(grid) != app.config["GAME_GRID_SIZE"]:
        return start_new_game()
    return GameEngine.restore(
        grid,
        session.get("score", 0),
        session.get("won", False),
        session.get("over", False),
        win_value=app.config["GAME_WIN_VALUE"],
        rng=make_rng(),
    )


def apply_move() -> GameSnapshot:
    """按请求中的方向移动，并把结果写回 session。"""
    engine = get_engine()
    snapshot = engine.move(read_direction())
    if snapshot.changed:
        session["moves"] = session.get("moves", 0) + 1
        save_engine(engine)
    return snapshot


def read_direction() -> Any:
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return None
        return payload.get("direction")
    return request.form.get("direction")


@app.errorhandler(InvalidDirectionError)
def handle_invalid_direction(error: InvalidDirectionError) -> ResponseReturnValue:
    logger.warning("rejected move: %s", error)
    if request.path.startswith("/api/"):
        return jsonify({"error": str(error)}), 400
    return redirect(url_for("index"))


# 方向按钮：(方向, 显示符号)
ARROW_BUTTONS = [
    ("up", "↑"),
    ("left", "←"),
    ("right", "→"),
    ("down", "↓"),
]


@app.route("/")
def index():
    """游戏主页面。"""
    engine = get_engine()
    snapshot = engine.snapshot()
    return render_template(
        "index.html",
        board=snapshot.grid,
        score=snapshot.score,
        won=snapshot.won,
        game_over=snapshot.over,
        max_tile=engine.max_tile(),
        size=engine.size,
        win_value=engine.win_value,
        arrow_buttons=ARROW_BUTTONS,
    )


@app.route("/move", methods=["POST"])
def move():
    """处理移动操作。"""
    apply_move()
    return redirect(url_for("index"))


@app.route("/reset", methods=["POST"])
def reset():
    """重新开始一局游戏。"""
    start_new_game()
    return redirect(url_for("index"))


@app.route("/api/state")
def api_state():
    return jsonify(get_engine().snapshot().to_dict())


@app.route("/api/move", methods=["POST"])
def api_move():
    return jsonify(apply_move().to_dict())


@app.route("/api/reset", methods=["POST"])
def api_reset():
    return jsonify(start_new_game().snapshot().to_dict())


if __name__ == "__main__":
    app.run(debug=True)
