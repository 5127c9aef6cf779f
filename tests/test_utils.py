"""Tests for kubeprovision.utils module."""
import logging
from unittest.mock import patch

from kubeprovision import utils


def test_command_exists_when_command_found():
    """Test command_exists returns True when command is found."""
    with patch('shutil.which', return_value='/usr/bin/kubectl'):
        assert utils.command_exists('kubectl') is True


def test_command_exists_when_command_not_found():
    """Test command_exists returns False when command not found."""
    with patch('shutil.which', return_value=None):
        assert utils.command_exists('nonexistent') is False


def test_expand_path_home_variable():
    """Test $HOME is expanded from the given environment."""
    env = {'HOME': '/home/operator'}
    assert utils.expand_path('$HOME/.kube/harvester.yaml', env) == '/home/operator/.kube/harvester.yaml'


def test_expand_path_tilde_and_braces():
    env = {'HOME': '/home/operator', 'CLUSTER': 'lab'}
    assert utils.expand_path('~/.kube/${CLUSTER}.yaml', env) == '/home/operator/.kube/lab.yaml'


def test_expand_path_leaves_unknown_variables():
    """Test unknown variables are left in place rather than raising."""
    assert utils.expand_path('$NOPE/config', {}) == '$NOPE/config'


def test_split_csv():
    assert utils.split_csv('dev, test,,prod ') == ['dev', 'test', 'prod']
    assert utils.split_csv('') == []
    assert utils.split_csv(None) == []


def test_log_info(capsys):
    """Test log_info outputs formatted message."""
    utils.log_info("Test message")
    captured = capsys.readouterr()
    assert "[INFO] Test message\n" == captured.out


def test_log_action(capsys):
    """Test log_action outputs indented message."""
    utils.log_action("Applying manifest")
    captured = capsys.readouterr()
    assert "  -> Applying manifest\n" == captured.out


def test_setup_logging_verbose():
    """Test verbose logging enables debug output."""
    with patch('kubeprovision.utils.logging.basicConfig') as mock_basic:
        utils.setup_logging(verbose=True)
    assert mock_basic.call_args.kwargs['level'] == logging.DEBUG


def test_setup_logging_quiet():
    with patch('kubeprovision.utils.logging.basicConfig') as mock_basic:
        utils.setup_logging(verbose=False)
    assert mock_basic.call_args.kwargs['level'] == logging.WARNING
