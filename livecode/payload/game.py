# Side-scrolling obstacle game. Runs inside a livecode execution context, which
# provides the global `host` and calls init_game() once the code has loaded.
import random

import pygame

GRAVITY = 1.5
JUMP_FORCE = -25
GROUND_HEIGHT = 250
OBSTACLE_SPEED = 10
GRID_SCROLL_SPEED = 2
GRID_SIZE = 20
FPS = 60
FRAME_TIME = 1000 / FPS

NEON = (0, 255, 157)
DANGER = (255, 0, 0)
BACKGROUND = (10, 10, 10)

score = 0
is_game_over = False
is_paused = True
player = None
obstacles = []
game_loop_id = None
grid_offset = 0
next_obstacle_delay = 0
last_frame_time = 0
font_small = None
font_large = None


def new_player():
    return {"x": 50, "y": GROUND_HEIGHT, "width": 40, "height": 40, "velocity_y": 0, "is_jumping": False}


def on_key(key):
    global is_paused
    if key != "space":
        return
    if is_game_over:
        restart_game()
    elif is_paused:
        is_paused = False
        start_loop()
    elif not player["is_jumping"]:
        jump()


def init_game():
    global player, font_small, font_large
    host.log.info("Initializing game...")
    pygame.font.init()
    font_small = pygame.font.SysFont("couriernew", 20, bold=True)
    font_large = pygame.font.SysFont("couriernew", 40, bold=True)
    player = new_player()
    host.add_key_listener(on_key)
    draw()
    draw_centered("Press Space To Start", font_large, 0)
    host.log.info("Game initialized!")


def jump():
    player["velocity_y"] = JUMP_FORCE
    player["is_jumping"] = True


def create_obstacle():
    global next_obstacle_delay
    height = random.randint(30, 60)
    width = random.randint(15, 30)
    obstacles.append({"x": host.width, "y": GROUND_HEIGHT + 40 - height, "width": width, "height": height})
    next_obstacle_delay = random.randint(30, 59)


def update_player():
    player["velocity_y"] += GRAVITY
    player["y"] += player["velocity_y"]
    if player["y"] > GROUND_HEIGHT:
        player["y"] = GROUND_HEIGHT
        player["velocity_y"] = 0
        player["is_jumping"] = False


def update_obstacles():
    global obstacles, next_obstacle_delay
    for obstacle in obstacles:
        obstacle["x"] -= OBSTACLE_SPEED
    obstacles = [o for o in obstacles if o["x"] + o["width"] > 0]
    if next_obstacle_delay > 0:
        next_obstacle_delay -= 1
    elif not obstacles or obstacles[-1]["x"] < host.width - 200:
        create_obstacle()


def check_collisions():
    p = pygame.Rect(player["x"], player["y"], player["width"], player["height"])
    for obstacle in obstacles:
        if p.colliderect(pygame.Rect(obstacle["x"], obstacle["y"], obstacle["width"], obstacle["height"])):
            game_over()
            return


def draw_centered(text, font, dy):
    surface = host.surface
    if surface is None or font is None:
        return
    rendered = font.render(text, True, NEON)
    rect = rendered.get_rect(center=(host.width // 2, host.height // 2 + dy))
    surface.blit(rendered, rect)


def draw():
    global grid_offset
    surface = host.surface
    if surface is None:
        return
    surface.fill(BACKGROUND)

    grid_offset = (grid_offset + GRID_SCROLL_SPEED) % GRID_SIZE
    grid = (0, 40, 25)
    for x in range(-grid_offset, host.width, GRID_SIZE):
        pygame.draw.line(surface, grid, (x, 0), (x, host.height))
    for y in range(0, host.height, GRID_SIZE):
        pygame.draw.line(surface, grid, (0, y), (host.width, y))

    pygame.draw.line(surface, NEON, (0, GROUND_HEIGHT + 40), (host.width, GROUND_HEIGHT + 40), 2)

    if player:
        rect = pygame.Rect(player["x"], player["y"], player["width"], player["height"])
        pygame.draw.rect(surface, (0, 200, 125), rect)
        pygame.draw.rect(surface, NEON, rect, 2)

    for obstacle in obstacles:
        rect = pygame.Rect(obstacle["x"], obstacle["y"], obstacle["width"], obstacle["height"])
        pygame.draw.rect(surface, (80, 0, 0), rect)
        pygame.draw.rect(surface, DANGER, rect, 2)

    if font_small is not None:
        surface.blit(font_small.render(f"SCORE: {score}", True, NEON), (20, 20))

    if is_game_over:
        draw_centered("GAME OVER", font_large, 0)
        draw_centered("PRESS SPACE TO RESTART", font_small, 40)


def game_loop(now):
    global game_loop_id, last_frame_time, score
    if is_game_over or is_paused:
        return
    if not last_frame_time:
        last_frame_time = now
    delta = now - last_frame_time
    if delta >= FRAME_TIME:
        update_player()
        update_obstacles()
        check_collisions()
        score += 1
        draw()
        last_frame_time = now - (delta % FRAME_TIME)
    game_loop_id = host.request_frame(game_loop)


def start_loop():
    global game_loop_id
    host.cancel_frame(game_loop_id)
    game_loop_id = host.request_frame(game_loop)


def game_over():
    global is_game_over
    is_game_over = True
    draw()


def restart_game():
    global player, obstacles, score, is_game_over, grid_offset, last_frame_time
    player = new_player()
    obstacles = []
    score = 0
    is_game_over = False
    grid_offset = 0
    last_frame_time = 0
    start_loop()
