"""Alert system module."""
from alerts.engine import DrawdownAlertEngine
from alerts.levels import LevelEngine
from alerts.ladders import LadderBook
from alerts.channels import ConsoleChannel, FileChannel, ExpoPushChannel, NotificationDispatcher
