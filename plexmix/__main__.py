from plexmix.main import run

run()
