# main.py
"""
Main entry point for the Genesis Engine.

This script orchestrates the entire lifecycle:
1. Loads configuration from `config.json`.
2. Initializes the logging system.
3. Builds the particle system, audio engine, orchestrator and visualizer.
4. Runs the main loop: input, one orchestrator tick, one rendered frame.
5. Handles clean shutdown.
"""
import logging
import sys
from utils import setup_logging, load_config
import cProfile
import pstats
import io

def _log_due(step_num: int, every: int) -> bool:
    """True on every `every`-th step; 0 disables periodic logs."""
    return bool(every) and step_num % every == 0

def main():
    """
    The main function to run the engine.
    """
    config_path = sys.argv[1] if len(sys.argv) > 1 else 'config.json'

    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config(config_path)
    except Exception as e:
        print(f"FATAL: Could not load {config_path}. Error: {e}")
        return

    setup_logging(config)

    logging.info("--- Genesis Engine Starting ---")

    particle_params = config.get('particles', {})
    engine_params = config.get('engine', {})
    audio_params = config.get('audio', {})
    vis_params = config.get('visualization', {})
    run_params = config.get('run_control', {})

    from particle import ParticleSystem
    from audio import AudioEngine
    from orchestrator import Orchestrator
    from visualization import Visualizer

    # --- Component Initialization ---
    particles = ParticleSystem(particle_params)
    # The display is a required collaborator: failing to open it is fatal.
    visualizer = Visualizer(vis_params, theme=particles.theme)
    audio = AudioEngine(audio_params)
    audio.init()
    if not audio.available:
        logging.warning("Running without audio.")
    orchestrator = Orchestrator(particles, audio, engine_params)

    profiler = cProfile.Profile() if run_params.get('profile', False) else None

    log_throttle = run_params.get('log_throttle_steps', 300)
    max_steps = run_params.get('max_steps', 0)  # 0 runs until the window closes

    running = True
    step_num = 0

    if profiler:
        profiler.enable()
    try:
        while running:
            if not visualizer.handle_events(orchestrator):
                break

            frame = orchestrator.tick()
            visualizer.draw(frame)
            step_num += 1

            # Hot loops must throttle logs
            if _log_due(step_num, log_throttle):
                logging.info(f"Step {step_num} | State: {frame.state.name}")
                logging.debug(
                    f"Step {step_num} | Intensity: {frame.intensity:.4f} | "
                    f"Average Speed: {particles.mean_speed():.4f}"
                )

            if max_steps and step_num >= max_steps:
                logging.info(f"Reached max_steps ({max_steps}). Stopping.")
                running = False
    finally:
        if profiler:
            profiler.disable()
        orchestrator.shutdown()
        visualizer.close()
        logging.info("Main loop finished.")

    if profiler:
        logging.info("--- Performance Profile ---")
        s = io.StringIO()
        # Sort by cumulative time spent in the function
        stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
        stats.print_stats(20)
        logging.info(f"\n{s.getvalue()}")

    logging.info("--- Genesis Engine Shutting Down ---")


if __name__ == "__main__":
    main()
