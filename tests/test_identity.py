"""
Tests for record identity and title derivation.
"""

import pytest

from retro_hub.library import clean_game_title, generate_id, split_extension


def reference_hash(path: str) -> int:
    """Closed-form polynomial hash: sum(c * 31**k) mod 2**32"""
    n = len(path)
    return sum(ord(c) * pow(31, n - 1 - i, 2**32) for i, c in enumerate(path)) % 2**32


class TestSplitExtension:

    @pytest.mark.parametrize("name, expected", [
        ("game.nes", ("game", ".nes")),
        ("game.tar.gz", ("game.tar", ".gz")),
        ("noext", ("noext", "")),
        (".nes", ("", ".nes")),
        ("trailing.", ("trailing", ".")),
    ])
    def test_splits_at_last_dot(self, name, expected):
        assert split_extension(name) == expected


class TestGenerateId:

    def test_known_value(self):
        """hash("a.nes") = 91060879, 91060879 % 26 = 13 -> 'N'"""
        assert generate_id("a.nes") == "AN"

    def test_basename_truncated_and_uppercased(self):
        game_id = generate_id("/roms/nes/supermariobros.nes")
        assert game_id[:-1] == "SUPERMAR"
        assert len(game_id) == 9

    def test_suffix_matches_32bit_rolling_hash(self):
        """Long paths overflow 32 bits; the suffix must use the wrapped value"""
        path = "/home/player/roms/Nintendo Entertainment System/" + "x" * 200 + "/Mega Man 2 (USA).nes"
        expected = chr(ord("A") + reference_hash(path) % 26)
        assert generate_id(path)[-1] == expected

    def test_non_ascii_paths_hash_code_points(self):
        path = "/roms/ポケモン/Pokémon Red.gb"
        assert generate_id(path) == "POKÉMON " + chr(ord("A") + reference_hash(path) % 26)

    def test_pure_function(self):
        path = "/roms/snes/Chrono Trigger (USA).sfc"
        assert len({generate_id(path) for _ in range(100)}) == 1

    def test_extensionless_and_dotfile(self):
        assert generate_id("/roms/README")[:-1] == "README"
        assert generate_id("/roms/.nes")[:-1] == ""

    def test_suffix_collisions_are_possible(self):
        """Only 26 suffixes exist: 27 paths sharing a basename must collide"""
        paths = [f"/roms/disk{i}/tetris.gb" for i in range(27)]
        ids = [generate_id(p) for p in paths]

        assert all(i[:-1] == "TETRIS" for i in ids)
        assert len(set(ids)) < len(ids)


class TestCleanGameTitle:

    @pytest.mark.parametrize("filename, expected", [
        ("Super_Mario-Bros (USA).nes", "Super Mario Bros"),
        ("Zelda (Europe).sfc", "Zelda"),
        ("Pokemon (Japan) (USA).gb", "Pokemon"),
        ("  Spaced_Out_ .gba", "Spaced Out"),
        ("Metroid (Rev A).nes", "Metroid (Rev A)"),
        ("Pitfall", "Pitfall"),
    ])
    def test_cleaning(self, filename, expected):
        assert clean_game_title(filename) == expected
