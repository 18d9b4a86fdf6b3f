from football_pool import create_app, db
from football_pool.models import Game, Pick, Result, SurvivorPick, User, Week

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "store": app.extensions["store"],
        "User": User,
        "Game": Game,
        "Result": Result,
        "Pick": Pick,
        "SurvivorPick": SurvivorPick,
        "Week": Week,
    }


if __name__ == "__main__":
    app.run(
        host=app.config["SERVER_HOST"],
        port=app.config["SERVER_PORT"],
        debug=app.config["DEBUG"],
        use_reloader=False,
    )
