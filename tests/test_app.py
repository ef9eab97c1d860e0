from __future__ import annotations

from collections.abc import Generator

import pytest
from flask.testing import FlaskClient

from app import app


@pytest.fixture()
def client() -> Generator[FlaskClient, None, None]:
    app.config.update(TESTING=True, GAME_SEED="1234", GAME_GRID_SIZE=4, GAME_WIN_VALUE=2048)
    with app.test_client() as c:
        yield c


def _set_state(client: FlaskClient, grid: list[list[int]], **state) -> None:  # type: ignore[no-untyped-def]
    with client.session_transaction() as sess:
        sess["grid"] = grid
        sess["score"] = state.get("score", 0)
        sess["won"] = state.get("won", False)
        sess["over"] = state.get("over", False)


def test_state_starts_new_game(client: FlaskClient) -> None:
    resp = client.get("/api/state")
    assert resp.status_code == 200
    data = resp.get_json()
    assert len(data["grid"]) == 4
    assert sum(1 for row in data["grid"] for v in row if v != 0) == 2
    assert data["score"] == 0
    assert data["won"] is False
    assert data["over"] is False


def test_state_is_kept_between_requests(client: FlaskClient) -> None:
    first = client.get("/api/state").get_json()
    second = client.get("/api/state").get_json()
    assert first == second


def test_each_client_carries_its_game_in_the_session() -> None:
    app.config.update(TESTING=True, GAME_SEED=None)
    for _ in range(50):
        with app.test_client() as c:
            data = c.get("/api/state").get_json()
            with c.session_transaction() as sess:
                assert sess["grid"] == data["grid"]
                assert sess["score"] == 0


def test_api_move_returns_snapshot(client: FlaskClient) -> None:
    _set_state(
        client,
        [
            [2, 2, 0, 0],
            [0, 0, 0, 0],
            [0, 0, 0, 0],
            [0, 0, 0, 0],
        ],
    )

    resp = client.post("/api/move", json={"direction": "left"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["changed"] is True
    assert data["score"] == 4
    assert data["grid"][0][0] == 4
    assert sum(1 for row in data["grid"] for v in row if v != 0) == 2

    assert client.get("/api/state").get_json()["grid"] == data["grid"]


def test_api_move_accepts_form_data(client: FlaskClient) -> None:
    _set_state(
        client,
        [
            [0, 0, 0, 0],
            [0, 0, 0, 0],
            [0, 0, 0, 0],
            [1024, 1024, 0, 0],
        ],
    )

    data = client.post("/api/move", data={"direction": "right"}).get_json()
    assert data["grid"][3][3] == 2048
    assert data["won"] is True
    assert client.get("/api/state").get_json()["won"] is True


def test_unchanged_move_keeps_session_state(client: FlaskClient) -> None:
    grid = [
        [2, 4, 0, 0],
        [0, 0, 0, 0],
        [0, 0, 0, 0],
        [0, 0, 0, 0],
    ]
    _set_state(client, grid, score=8)

    data = client.post("/api/move", json={"direction": "left"}).get_json()
    assert data["changed"] is False
    assert data["grid"] == grid
    assert data["score"] == 8


@pytest.mark.parametrize(
    "body",
    [
        {"direction": "diagonal"},
        {},
        ["left"],
        "left",
    ],
)
def test_invalid_direction_is_bad_request(client: FlaskClient, body) -> None:  # type: ignore[no-untyped-def]
    before = client.get("/api/state").get_json()
    resp = client.post("/api/move", json=body)
    assert resp.status_code == 400
    assert "direction" in resp.get_json()["error"]
    assert client.get("/api/state").get_json() == before


def test_form_with_bad_direction_redirects(client: FlaskClient) -> None:
    before = client.get("/api/state").get_json()
    resp = client.post("/move", data={"direction": "diagonal"})
    assert resp.status_code == 302
    assert client.get("/api/state").get_json() == before


def test_reset_starts_fresh_game(client: FlaskClient) -> None:
    _set_state(
        client,
        [
            [2, 4, 8, 16],
            [0, 0, 0, 0],
            [0, 0, 0, 0],
            [0, 0, 0, 0],
        ],
        score=100,
        won=True,
    )
    data = client.post("/api/reset").get_json()
    assert data["score"] == 0
    assert data["won"] is False
    assert sum(1 for row in data["grid"] for v in row if v != 0) == 2


def test_index_renders_board(client: FlaskClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Score: 0" in resp.data


def test_form_move_redirects_to_index(client: FlaskClient) -> None:
    client.get("/")
    resp = client.post("/move", data={"direction": "up"})
    assert resp.status_code == 302

    resp = client.post("/reset")
    assert resp.status_code == 302


def test_game_over_banner(client: FlaskClient) -> None:
    _set_state(
        client,
        [
            [2, 4, 2, 4],
            [4, 2, 4, 2],
            [2, 4, 2, 4],
            [4, 2, 4, 2],
        ],
        over=True,
    )
    resp = client.get("/")
    assert b"Game Over" in resp.data
