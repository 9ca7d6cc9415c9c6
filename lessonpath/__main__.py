from lessonpath.cli.main import run

run()
