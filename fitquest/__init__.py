"""FitQuest progression engine"""
