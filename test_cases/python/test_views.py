def check_find_user(cursor):
    name = input()
    cursor.execute("SELECT * FROM users WHERE name = '" + name + "'")
