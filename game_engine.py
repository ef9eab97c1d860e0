import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

SIZE = 4  # 默认棋盘大小：4x4
WIN_VALUE = 2048
TILE_PROBABILITIES: Dict[int, float] = {2: 0.9, 4: 0.1}

Grid = List[List[int]]
Line = List[int]
Cell = Tuple[int, int]


class GameError(Exception):
    """游戏引擎异常基类。"""


class GameConfigError(GameError, ValueError):
    """构造参数不合法。"""


class InvalidDirectionError(GameError, ValueError):
    """无法识别的移动方向。"""


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        """接受 Direction 或其名称字符串（不区分大小写）。"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidDirectionError(f"unknown direction: {value!r}")

    @property
    def is_horizontal(self) -> bool:
        return self in (Direction.LEFT, Direction.RIGHT)

    @property
    def is_reversed(self) -> bool:
        # 向右/向下时倒序读取，使合并总是朝行首进行
        return self in (Direction.RIGHT, Direction.DOWN)


@dataclass(frozen=True)
class GameSnapshot:
    grid: Tuple[Tuple[int, ...], ...]
    score: int
    won: bool
    over: bool
    changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid": [list(row) for row in self.grid],
            "score": self.score,
            "won": self.won,
            "over": self.over,
            "changed": self.changed,
        }


def new_grid(size: int = SIZE) -> Grid:
    """创建一个空棋盘。"""
    return [[0] * size for _ in range(size)]


def copy_grid(grid: Grid) -> Grid:
    """深拷贝二维网格。"""
    return [row[:] for row in grid]


def slide_and_merge(line: Line) -> Tuple[Line, int]:
    """
    去掉空格后从行首扫描一遍：相邻两个相等的数字合成一个，二者都被消耗，
    所以合成的新数字本次不会再和后面的数字合并（三个 2 得到 4 和 2，而不是 8）。
    返回补零到原长度的新行，以及所有新合成数字之和作为得分。
    """
    arr = [x for x in line if x != 0]
    new_line: Line = []
    score_gain = 0
    i = 0

    while i < len(arr):
        if i + 1 < len(arr) and arr[i] == arr[i + 1]:
            merged = arr[i] * 2
            new_line.append(merged)
            score_gain += merged
            i += 2
        else:
            new_line.append(arr[i])
            i += 1

    new_line += [0] * (len(line) - len(new_line))
    return new_line, score_gain


def read_line(grid: Grid, index: int, direction: Direction) -> Line:
    """按移动方向取出第 index 行（左右）或列（上下）。"""
    if direction.is_horizontal:
        line = list(grid[index])
    else:
        line = [row[index] for row in grid]
    if direction.is_reversed:
        line.reverse()
    return line


def write_line(grid: Grid, index: int, direction: Direction, line: Line) -> None:
    """把 read_line 方向上的一行写回棋盘。"""
    line = list(reversed(line)) if direction.is_reversed else list(line)
    if direction.is_horizontal:
        grid[index] = line
    else:
        for r, value in enumerate(line):
            grid[r][index] = value


def has_empty_cell(grid: Grid) -> bool:
    return any(0 in row for row in grid)


def can_merge(grid: Grid) -> bool:
    """是否存在右侧或下方相邻且相等的非零格子。"""
    size = len(grid)
    for r in range(size):
        for c in range(size):
            v = grid[r][c]
            if v == 0:
                continue
            if c + 1 < size and grid[r][c + 1] == v:
                return True
            if r + 1 < size and grid[r + 1][c] == v:
                return True
    return False


def can_move(grid: Grid) -> bool:
    """判断是否还能继续游戏。"""
    return has_empty_cell(grid) or can_merge(grid)


def contains_value(grid: Grid, value: int) -> bool:
    return any(value in row for row in grid)


def max_tile(grid: Grid) -> int:
    """取得当前最大的数字。"""
    return max(max(row) for row in grid)


def _is_power_of_two(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0 and value & (value - 1) == 0


def _validate_probabilities(tile_probabilities: Dict[int, float]) -> Dict[int, float]:
    if not tile_probabilities:
        raise GameConfigError("tile_probabilities must not be empty")
    for value, weight in tile_probabilities.items():
        if not _is_power_of_two(value) or value < 2:
            raise GameConfigError(f"tile value must be a power of two >= 2, got {value!r}")
        if weight <= 0:
            raise GameConfigError(f"probability for tile {value} must be positive, got {weight!r}")
    total = sum(tile_probabilities.values())
    if abs(total - 1.0) > 1e-9:
        raise GameConfigError(f"tile probabilities must sum to 1, got {total}")
    return dict(tile_probabilities)


class GameEngine:
    """
    2048 规则引擎：持有棋盘、分数以及 won / over 两个标志。

    渲染和输入绑定都在外部完成，外部只调用 move(direction) 并读取返回的快照。
    随机数来源通过 rng 注入，传入带种子的 random.Random 即可复现整局游戏。
    """

    def __init__(
        self,
        size: int = SIZE,
        win_value: int = WIN_VALUE,
        tile_probabilities: Optional[Dict[int, float]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._configure(size, win_value, tile_probabilities, rng)
        self._initialize()

    @classmethod
    def restore(
        cls,
        grid: Grid,
        score: int,
        won: bool,
        over: bool,
        win_value: int = WIN_VALUE,
        tile_probabilities: Optional[Dict[int, float]] = None,
        rng: Optional[random.Random] = None,
    ) -> "GameEngine":
        """用已有的棋盘状态重建引擎，不生成初始数字。"""
        size = len(grid)
        if any(len(row) != size for row in grid):
            raise GameConfigError("grid must be square")
        for row in grid:
            for v in row:
                if v != 0 and (not _is_power_of_two(v) or v < 2):
                    raise GameConfigError(f"invalid tile value {v!r}")
        if score < 0:
            raise GameConfigError(f"score must be non-negative, got {score!r}")

        engine = cls.__new__(cls)
        engine._configure(size, win_value, tile_probabilities, rng)
        engine.grid = copy_grid(grid)
        engine.score = score
        engine.won = bool(won)
        engine.over = bool(over)
        return engine

    def _configure(
        self,
        size: int,
        win_value: int,
        tile_probabilities: Optional[Dict[int, float]],
        rng: Optional[random.Random],
    ) -> None:
        if not isinstance(size, int) or isinstance(size, bool) or size < 2:
            raise GameConfigError(f"size must be an integer >= 2, got {size!r}")
        if not _is_power_of_two(win_value) or win_value < 4:
            raise GameConfigError(f"win_value must be a power of two >= 4, got {win_value!r}")

        self.size = size
        self.win_value = win_value
        self.tile_probabilities = _validate_probabilities(
            TILE_PROBABILITIES if tile_probabilities is None else tile_probabilities
        )
        self.rng = rng if rng is not None else random.Random()

    def _initialize(self) -> None:
        """
        清空棋盘并随机生成两个初始数字。
        只在构造时调用：新的一局就是新的 GameEngine 实例。
        """
        self.grid = new_grid(self.size)
        self.score = 0
        self.won = False
        self.over = False
        self.spawn_tile()
        self.spawn_tile()

    def _draw_tile_value(self) -> int:
        roll = self.rng.random()
        cumulative = 0.0
        for value, weight in self.tile_probabilities.items():
            cumulative += weight
            if roll < cumulative:
                return value
        # 浮点累加误差时落在最后一个取值上
        return value

    def spawn_tile(self) -> Optional[Cell]:
        """
        在空格随机生成一个数字。
        返回生成的位置 (r, c)，如果棋盘已满返回 None
        """
        empty_cells = [
            (r, c)
            for r in range(self.size)
            for c in range(self.size)
            if self.grid[r][c] == 0
        ]
        if not empty_cells:
            return None

        r, c = self.rng.choice(empty_cells)
        self.grid[r][c] = self._draw_tile_value()
        logger.debug("spawned %d at (%d, %d)", self.grid[r][c], r, c)
        return r, c

    def move(self, direction: Any) -> GameSnapshot:
        """整盘朝 direction 移动，返回移动后的快照。"""
        direction = Direction.parse(direction)
        if self.over:
            return self.snapshot()

        new_grid_state = copy_grid(self.grid)
        changed = False
        total_gain = 0
        for index in range(self.size):
            line = read_line(self.grid, index, direction)
            merged, gain = slide_and_merge(line)
            if merged != line:
                changed = True
            total_gain += gain
            write_line(new_grid_state, index, direction, merged)

        logger.debug("move %s: changed=%s gain=%d", direction.value, changed, total_gain)
        if not changed:
            return self.snapshot()

        self.grid = new_grid_state
        self.score += total_gain
        self.spawn_tile()

        if not self.won and contains_value(self.grid, self.win_value):
            self.won = True
            logger.info("reached %d with score %d", self.win_value, self.score)
        if not self.over and not can_move(self.grid):
            self.over = True
            logger.info("no moves left, final score %d", self.score)

        return self.snapshot(changed=True)

    def is_won(self) -> bool:
        return self.won

    def is_over(self) -> bool:
        return self.over

    def current_grid(self) -> Grid:
        return copy_grid(self.grid)

    def current_score(self) -> int:
        return self.score

    def max_tile(self) -> int:
        return max_tile(self.grid)

    def snapshot(self, changed: bool = False) -> GameSnapshot:
        return GameSnapshot(
            grid=tuple(tuple(row) for row in self.grid),
            score=self.score,
            won=self.won,
            over=self.over,
            changed=changed,
        )
