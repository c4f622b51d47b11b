def main():
    # config profiles are the first thing that need to be loaded (especially before stackdeploy.config!)
    from .profiles import set_profile_from_sys_argv

    set_profile_from_sys_argv()

    from .stackdeploy import stackdeploy

    stackdeploy(prog_name="stackdeploy")


if __name__ == "__main__":
    main()
