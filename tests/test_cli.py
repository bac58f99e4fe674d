import pytest

from cli import build_parser, main


def test_price_impact_command(capsys):
    assert main(["price-impact", "100", "110"]) == 0
    assert capsys.readouterr().out.strip() == "10.0"


def test_suite_commands_accept_repeated_vaults():
    args = build_parser().parse_args(["full", "--vault", "A", "--vault", "B"])
    assert args.command == "full"
    assert args.vault == ["A", "B"]


def test_pool_state_dialect_choices():
    args = build_parser().parse_args(["pool-state", "0xpool", "--dialect", "algebra"])
    assert args.dialect == "algebra"
    with pytest.raises(SystemExit):
        build_parser().parse_args(["pool-state", "0xpool", "--dialect", "sushi"])
