import datetime
from rest_api import GymAPI



def seed() -> None:
    api = GymAPI()
    if api.exercises.fetch_all_exercises():
        print("Database already contains exercises")
        return

    bench = api.workouts.find_or_create_option("Bench Press", "Chest")
    squat = api.workouts.find_or_create_option("Back Squat", "Legs")
    today = datetime.date.today().isoformat()
    ex_id = api.workouts.create_exercise(bench, today)
    api.workouts.add_set(ex_id, 5, 185.0)
    api.workouts.add_set(ex_id, 5, 205.0)
    ex_id = api.workouts.create_exercise(squat, today)
    api.workouts.add_set(ex_id, 5, 90.0, per_side=True)
    api.routine_service.create_routine("Full Body", [bench, squat])
    print("Seed data inserted")


if __name__ == "__main__":
    seed()
